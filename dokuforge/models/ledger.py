"""Audit ledger entry model (append-only, hash-chained).

Every pipeline stage appends one entry.  Each entry links to its
predecessor through ``previous_entry_hash`` and is sealed by
``entry_hash``, so edits, deletions and reordering are detectable.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class AuditEntry(BaseModel):
    """A single line of the audit ledger."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    stage: str  # "keygen", "preview", "certify", "compile"
    agent_ref: str = ""
    signed_by: str = ""
    key_path: str = ""
    fingerprint: str = ""
    sha256: str = ""
    artifact_path: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    tool_version: str = "0.3.0"
    previous_entry_hash: str = ""
    entry_hash: str = ""
