"""Report models — scan findings and stage reports."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ScanIssue(BaseModel):
    """A single static-scan finding: ``{file, line, pattern, severity}``."""

    model_config = ConfigDict(frozen=True)

    file: str
    line: int
    pattern: str
    severity: Severity = Severity.MEDIUM


class VerificationReport(BaseModel):
    """Outcome of re-checking every integrity signal of one artifact."""

    model_config = ConfigDict(frozen=True)

    path: str
    state: str
    checks: dict[str, bool] = {}
    messages: list[str] = []

    @property
    def ok(self) -> bool:
        return bool(self.checks) and all(self.checks.values())

    @property
    def failed(self) -> list[str]:
        return [name for name, passed in self.checks.items() if not passed]
