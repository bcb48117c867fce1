"""Artifact lifecycle models (draft -> previewed -> certified -> compiled).

Documents on disk are plain JSON.  The wrappers below tag a document with
the lifecycle state it has reached, and they can only be built when the
document really is in that state.  ``Compiler`` accepts
``CertifiedArtifact`` values only, so "is this certified" is settled when
the wrapper is constructed rather than re-checked deep inside a stage.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from dokuforge.errors import ForgeInputError, ForgeIntegrityError


class ArtifactState(str, Enum):
    """Lifecycle state of an agent artifact."""

    DRAFT = "draft"
    PREVIEWED = "previewed"
    CERTIFIED = "certified"
    COMPILED = "compiled"


# Stages cannot be skipped.  A certified lineage may be re-previewed
# (re-certifying requires a fresh preview); compiled bundles accumulate
# versions from the same certificate.
VALID_TRANSITIONS: dict[ArtifactState, set[ArtifactState]] = {
    ArtifactState.DRAFT: {ArtifactState.PREVIEWED},
    ArtifactState.PREVIEWED: {ArtifactState.PREVIEWED, ArtifactState.CERTIFIED},
    ArtifactState.CERTIFIED: {ArtifactState.PREVIEWED, ArtifactState.COMPILED},
    ArtifactState.COMPILED: {ArtifactState.PREVIEWED, ArtifactState.COMPILED},
}


class InvalidTransitionError(ForgeIntegrityError):
    """Raised when a document is fed to a stage that cannot accept it."""


class UncertifiedArtifactError(ForgeIntegrityError):
    """Raised when a document lacks the certifier block or key version."""

    remediation = "Run `dokuforge certify` on a fresh preview before compiling."


class InvalidAgentRefError(ForgeInputError):
    """Raised when an ``<agent>@<birth>`` reference cannot be parsed."""


def require_transition(current: ArtifactState, target: ArtifactState) -> None:
    """Raise ``InvalidTransitionError`` unless *current* -> *target* is allowed."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidTransitionError(
            f"Cannot move an artifact from {current.value} to {target.value}. "
            f"Allowed: {sorted(s.value for s in allowed)}"
        )


class AgentRef(BaseModel):
    """``(agent id, birth timestamp)`` — the key of every artifact lineage."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    birth: str

    @property
    def slug(self) -> str:
        return f"{self.agent_id}@{self.birth}"

    @classmethod
    def parse(cls, slug: str) -> AgentRef:
        agent_id, sep, birth = slug.partition("@")
        if not sep or not agent_id or not birth:
            raise InvalidAgentRefError(
                f"Invalid agent reference {slug!r}; expected <agentId>@<timestamp>."
            )
        return cls(agent_id=agent_id, birth=birth)

    def __str__(self) -> str:
        return self.slug


# ---------------------------------------------------------------------------
# Runtime classification of raw documents
# ---------------------------------------------------------------------------


def _metadata(document: dict[str, Any]) -> dict[str, Any]:
    meta = document.get("metadata") if isinstance(document, dict) else None
    return meta if isinstance(meta, dict) else {}


def is_certified(document: dict[str, Any]) -> bool:
    """The certification predicate: certifier block and key version present."""
    if not isinstance(document, dict):
        return False
    certifier = document.get("certifier")
    return (
        isinstance(certifier, dict)
        and bool(certifier)
        and bool(_metadata(document).get("certifierKeyVersion"))
    )


def classify_document(document: dict[str, Any]) -> ArtifactState:
    """Return the furthest lifecycle state *document* has reached."""
    if not isinstance(document, dict):
        return ArtifactState.DRAFT
    if is_certified(document):
        if isinstance(document.get("compiler"), dict) and _metadata(document).get("version"):
            return ArtifactState.COMPILED
        return ArtifactState.CERTIFIED
    if isinstance(document.get("previewer"), dict) and "estimatedTokens" in document:
        return ArtifactState.PREVIEWED
    return ArtifactState.DRAFT


def agent_ref_of(document: dict[str, Any]) -> AgentRef:
    """Extract the lineage key recorded in a previewed (or later) document."""
    source = document.get("sourceVersions", {}).get("agent", {})
    if isinstance(source, dict) and source.get("version"):
        return AgentRef.parse(source["version"])
    agent = document.get("agent", {})
    if isinstance(agent, dict) and agent.get("agentName") and agent.get("birth"):
        return AgentRef(agent_id=agent["agentName"], birth=agent["birth"])
    raise InvalidAgentRefError("Document does not record which agent it belongs to.")


# ---------------------------------------------------------------------------
# Typed wrappers
# ---------------------------------------------------------------------------


class _ArtifactBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_ref: AgentRef
    document: dict[str, Any]
    path: Path | None = None

    @property
    def metadata(self) -> dict[str, Any]:
        return _metadata(self.document)


class PreviewedArtifact(_ArtifactBase):
    """A read-only preview snapshot awaiting certification."""

    state: Literal[ArtifactState.PREVIEWED] = ArtifactState.PREVIEWED
    estimated_tokens: int
    content_sha256: str
    section_tokens: dict[str, int] = {}
    manifest_path: Path | None = None


class CertifiedArtifact(_ArtifactBase):
    """A signed, immutable certificate for one preview lineage."""

    state: Literal[ArtifactState.CERTIFIED] = ArtifactState.CERTIFIED
    certifier_name: str
    certifier_key_version: str
    sha256: str


class CompiledArtifact(_ArtifactBase):
    """One immutable compiled version of a certificate."""

    state: Literal[ArtifactState.COMPILED] = ArtifactState.COMPILED
    version: str
    sha256: str
    sidecar_path: Path | None = None


def as_previewed(document: dict[str, Any], path: Path | None = None) -> PreviewedArtifact:
    """Wrap a preview document, rejecting anything that is not a preview."""
    state = classify_document(document)
    if state is not ArtifactState.PREVIEWED:
        raise InvalidTransitionError(
            f"Expected a previewed artifact, found one in state {state.value}.",
            remediation="Run `dokuforge preview` to generate a fresh preview.",
        )
    return PreviewedArtifact(
        agent_ref=agent_ref_of(document),
        document=document,
        path=path,
        estimated_tokens=int(document.get("estimatedTokens", 0)),
        content_sha256=str(document.get("sha256", "")),
    )


def as_certified(document: dict[str, Any], path: Path | None = None) -> CertifiedArtifact:
    """Wrap a certified document; raise ``UncertifiedArtifactError`` otherwise."""
    where = f" ({path.name})" if path is not None else ""
    if not isinstance(document, dict):
        raise UncertifiedArtifactError(f"Artifact{where} is not a JSON object.")
    if not is_certified(document):
        raise UncertifiedArtifactError(
            f"Artifact{where} is not certified: certifier block or "
            "metadata.certifierKeyVersion is missing."
        )
    meta = _metadata(document)
    return CertifiedArtifact(
        agent_ref=agent_ref_of(document),
        document=document,
        path=path,
        certifier_name=str(document["certifier"].get("certifierName", "")),
        certifier_key_version=str(meta["certifierKeyVersion"]),
        sha256=str(meta.get("sha256", "")),
    )
