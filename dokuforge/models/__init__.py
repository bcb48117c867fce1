"""dokuforge data models — pydantic v2, frozen."""

from dokuforge.models.artifacts import (
    VALID_TRANSITIONS,
    AgentRef,
    ArtifactState,
    CertifiedArtifact,
    CompiledArtifact,
    PreviewedArtifact,
    as_certified,
    as_previewed,
    classify_document,
    is_certified,
)
from dokuforge.models.config import PipelineConfig
from dokuforge.models.identity import Identity, IdentityFields, IdentityRole, TrustLevel
from dokuforge.models.ledger import AuditEntry
from dokuforge.models.reports import ScanIssue, Severity, VerificationReport
from dokuforge.models.targets import MODEL_TARGETS, ModelTarget, lookup_target
from dokuforge.models.versioning import VersionPin

__all__ = [
    # artifacts
    "AgentRef",
    "ArtifactState",
    "VALID_TRANSITIONS",
    "PreviewedArtifact",
    "CertifiedArtifact",
    "CompiledArtifact",
    "as_previewed",
    "as_certified",
    "classify_document",
    "is_certified",
    # config
    "PipelineConfig",
    # identity
    "Identity",
    "IdentityFields",
    "IdentityRole",
    "TrustLevel",
    # ledger
    "AuditEntry",
    # reports
    "ScanIssue",
    "Severity",
    "VerificationReport",
    # targets
    "ModelTarget",
    "MODEL_TARGETS",
    "lookup_target",
    # versioning
    "VersionPin",
]
