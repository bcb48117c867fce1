"""Append-only, hash-chained audit ledger backed by a JSONL file.

Every preview, certification, compilation and key generation appends one
``AuditEntry``.  The ledger is the traceability record: who signed what,
with which key file, producing which digest.

Design:
- Append-only: only ``append()`` writes; no update, no delete.
- Hash-chained: each entry includes the ``entry_hash`` of its predecessor.
- ``verify_chain()`` walks the file and recomputes every seal, so an
  edited, deleted or reordered line is detected.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from dokuforge.core.fsio import append_line
from dokuforge.core.hasher import compute_entry_hash
from dokuforge.errors import ForgeIntegrityError
from dokuforge.models.ledger import AuditEntry

logger = logging.getLogger(__name__)


class AuditChainError(ForgeIntegrityError):
    """Raised when the audit hash chain is broken."""

    remediation = "The audit log was modified outside dokuforge; restore it from a backup."


class AuditLedger:
    """Hash-chained audit trail.

    Parameters
    ----------
    path:
        Path to the JSONL file.  Created on the first append.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Core: append-only write
    # ------------------------------------------------------------------

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Seal *entry* onto the end of the chain and persist it.

        Returns the entry with ``previous_entry_hash`` and ``entry_hash`` set.
        """
        previous_hash = self._latest_hash()

        entry_dict = entry.model_dump(mode="json")
        entry_dict["previous_entry_hash"] = previous_hash
        entry_dict["entry_hash"] = ""

        sealed = entry.model_copy(
            update={
                "previous_entry_hash": previous_hash,
                "entry_hash": compute_entry_hash(entry_dict),
            }
        )
        append_line(self._path, json.dumps(sealed.model_dump(mode="json"), sort_keys=True))
        logger.debug("Audit %s %s sealed %s", sealed.stage, sealed.agent_ref, sealed.entry_hash[:12])
        return sealed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def entries(self) -> list[AuditEntry]:
        """Every entry, in file order."""
        if not self._path.is_file():
            return []
        result: list[AuditEntry] = []
        for lineno, line in enumerate(self._path.read_text(encoding="utf-8").splitlines(), 1):
            if not line.strip():
                continue
            try:
                result.append(AuditEntry.model_validate_json(line))
            except ValidationError as exc:
                raise AuditChainError(f"Unreadable audit entry on line {lineno}: {exc}") from exc
        return result

    def entries_for(self, agent_ref: str) -> list[AuditEntry]:
        return [e for e in self.entries() if e.agent_ref == agent_ref]

    def _latest_hash(self) -> str:
        entries = self.entries()
        return entries[-1].entry_hash if entries else ""

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify_chain(self) -> bool:
        """Verify the whole chain.

        Returns ``True`` if every link and seal checks out, raises
        ``AuditChainError`` otherwise.
        """
        prev_hash = ""
        for entry in self.entries():
            if entry.previous_entry_hash != prev_hash:
                raise AuditChainError(
                    f"Chain broken at entry {entry.entry_id}: "
                    f"expected previous_hash={prev_hash!r}, "
                    f"got {entry.previous_entry_hash!r}"
                )
            expected_hash = compute_entry_hash(entry.model_dump(mode="json"))
            if entry.entry_hash != expected_hash:
                raise AuditChainError(
                    f"Tampered entry {entry.entry_id}: "
                    f"expected hash={expected_hash!r}, got {entry.entry_hash!r}"
                )
            prev_hash = entry.entry_hash
        return True
