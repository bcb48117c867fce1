"""Abstract base stage with an enforced lifecycle.

Every concrete stage inherits from BaseStage and implements only ``execute()``.
The ``run_stage()`` wrapper is **not overridable**.  It enforces the
lifecycle ordering:

    execute -> record audit entries (skipped in doctor mode)

Forge errors raised by ``execute()`` propagate unchanged so the operator
sees the specific gate that failed; anything else is wrapped in
``StageExecutionError``.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, ClassVar, final

from dokuforge.core.audit_ledger import AuditLedger
from dokuforge.core.fsio import append_line, atomic_write_json
from dokuforge.core.identity_store import IdentityStore
from dokuforge.core.layout import ForgeLayout
from dokuforge.core.signing import sign_data
from dokuforge.core.version_store import VersionedArtifactStore
from dokuforge.errors import ForgeError, ForgeInputError
from dokuforge.models.config import PipelineConfig
from dokuforge.models.identity import Identity, IdentityRole
from dokuforge.models.ledger import AuditEntry

logger = logging.getLogger(__name__)

# Role directories searched, in order, for each signing party.
SIGNER_ROLES: dict[IdentityRole, tuple[IdentityRole, ...]] = {
    IdentityRole.OWNER: (IdentityRole.OWNER,),
    IdentityRole.PREVIEWER: (IdentityRole.PREVIEWER, IdentityRole.SIGNER),
    IdentityRole.CERTIFIER: (IdentityRole.CERTIFIER, IdentityRole.SIGNER),
    IdentityRole.COMPILER: (IdentityRole.COMPILER, IdentityRole.SIGNER),
}


class StageExecutionError(ForgeError):
    """Raised when a stage's execute() method fails unexpectedly."""


class MissingIdentityError(ForgeInputError):
    """Raised when no identity is available for a signing role."""


class TokenBudgetError(ForgeInputError):
    """Raised in strict mode when a document exceeds its token budget."""

    remediation = "Trim the plan or criteria, or re-run without --strict."


class Signer:
    """An identity together with the location of its private key.

    The key itself is loaded only when ``sign`` needs it.
    """

    def __init__(self, identity: Identity, identities: IdentityStore) -> None:
        self.identity = identity
        self._identities = identities

    @property
    def key_path(self) -> Path:
        return self._identities.key_path(self.identity)

    def sign(self, digest: str) -> str:
        return sign_data(digest.encode("utf-8"), self._identities.load_private_key(self.identity))


class BaseStage(abc.ABC):
    """Abstract base for the preview, certify and compile stages.

    Subclasses **must** set ``stage_id`` and ``display_name`` and implement
    ``execute(run_context)``.  Subclasses **must not** override
    ``run_stage()``.

    Parameters
    ----------
    config:
        Explicit pipeline configuration; stages read no other settings.
    layout, store, identities, ledger:
        Collaborators, built from ``config.root`` when omitted.
    """

    stage_id: ClassVar[str]
    display_name: ClassVar[str]

    def __init__(
        self,
        config: PipelineConfig,
        *,
        layout: ForgeLayout | None = None,
        store: VersionedArtifactStore | None = None,
        identities: IdentityStore | None = None,
        ledger: AuditLedger | None = None,
    ) -> None:
        self.config = config
        self.layout = layout or ForgeLayout(config.root)
        self.store = store or VersionedArtifactStore(self.layout)
        self.identities = identities or IdentityStore(self.layout)
        self.ledger = ledger or AuditLedger(self.layout.audit_ledger_path)

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        """Run every gate, then (unless in doctor mode) write the outputs.

        Returns a result dict; audit entries to record go under ``_audit``.
        """
        ...

    # ------------------------------------------------------------------
    # Lifecycle (not overridable)
    # ------------------------------------------------------------------

    @final
    def run_stage(self, run_context: dict[str, Any]) -> dict[str, Any]:
        """Execute the stage and record its audit entries.  **Do not override.**"""
        logger.info(
            "%s [%s] started%s",
            self.display_name,
            self.stage_id,
            " (doctor: nothing will be written)" if self.config.doctor else "",
        )
        try:
            result = self.execute(run_context)
        except ForgeError as exc:
            logger.error("%s [%s] refused: %s", self.display_name, self.stage_id, exc)
            raise
        except Exception as exc:
            logger.error("%s [%s] execution failed: %s", self.display_name, self.stage_id, exc)
            raise StageExecutionError(f"Stage {self.stage_id} failed: {exc}") from exc

        sealed: list[AuditEntry] = []
        if not self.config.doctor:
            for entry in result.pop("_audit", []):
                sealed.append(self.ledger.append(entry))
        result["audit"] = sealed
        logger.info("%s [%s] finished", self.display_name, self.stage_id)
        return result

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def resolve_signer(self, role: IdentityRole, name: str | None) -> Signer:
        """Pick the identity that signs for *role*.

        With no *name*, the role must have exactly one identity on file.
        """
        roles = SIGNER_ROLES[role]
        if name is None:
            names = sorted({n for r in roles for n in self.identities.list_names(r)})
            if not names:
                raise MissingIdentityError(
                    f"No {role.value} identity found.",
                    remediation=f"Run `dokuforge keygen {role.value} --name <name>` first.",
                )
            if len(names) > 1:
                raise MissingIdentityError(
                    f"Several {role.value} identities exist ({', '.join(names)}).",
                    remediation=f"Choose one with --{role.value} <name>.",
                )
            name = names[0]
        identity = self.identities.resolve_identity(name, roles=roles)
        return Signer(identity, self.identities)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def check_token_budget(
        self, tokens: int, limit: int, what: str, warnings: list[str]
    ) -> None:
        """Warn (or fail, in strict mode) when *tokens* exceeds *limit*."""
        if tokens <= limit:
            return
        message = f"{what}: {tokens} estimated tokens exceed the budget of {limit}."
        if self.config.strict:
            raise TokenBudgetError(message)
        logger.warning(message)
        warnings.append(message)

    def write_log(self, stage_dir: str, agent_id: str, filename: str, lines: Iterable[str]) -> Path:
        path = self.layout.logs_dir(stage_dir, agent_id) / filename
        for line in lines:
            append_line(path, line)
        return path

    def write_report(self, stage_dir: str, agent_id: str, filename: str, report: dict[str, Any]) -> Path:
        return atomic_write_json(self.layout.reports_dir(stage_dir, agent_id) / filename, report)

    def audit_entry(self, signer: Signer, **fields: Any) -> AuditEntry:
        """Audit entry signed by *signer*; records the key path, never the key."""
        return AuditEntry(
            stage=self.stage_id,
            signed_by=signer.identity.name,
            key_path=str(signer.key_path),
            fingerprint=signer.identity.fingerprint,
            tool_version=self.config.version_pin.tool_version,
            **fields,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} stage_id={self.stage_id!r}>"
