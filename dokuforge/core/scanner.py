"""Static pattern scanner for agent source directories.

Reports possible secrets and denied terms as ``ScanIssue`` values
(``{file, line, pattern, severity}``).  The preview stage surfaces the
issues; only strict mode turns them into a hard failure.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path

from dokuforge.errors import ForgeInputError
from dokuforge.models.reports import ScanIssue, Severity

logger = logging.getLogger(__name__)

_SCANNED_SUFFIXES = {".json", ".md", ".yaml", ".yml", ".txt"}

# Patterns for secrets scanning.
_SECRET_PATTERNS: list[dict[str, str]] = [
    {"name": "api_key_field", "pattern": r"(?i)api[_-]?key\"?\s*:", "severity": "high"},
    {"name": "secret_field", "pattern": r"(?i)secret\"?\s*:", "severity": "medium"},
    {"name": "openai_key", "pattern": r"sk-[a-zA-Z0-9]{20,}", "severity": "critical"},
    {"name": "github_token", "pattern": r"gh[pousr]_[a-zA-Z0-9]{30,}", "severity": "critical"},
    {"name": "jwt", "pattern": r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+", "severity": "high"},
    {"name": "aws_key", "pattern": r"AKIA[0-9A-Z]{16}", "severity": "critical"},
    {
        "name": "private_key",
        "pattern": r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----",
        "severity": "critical",
    },
]

_COMPILED = [
    (p["name"], re.compile(p["pattern"]), Severity(p["severity"])) for p in _SECRET_PATTERNS
]


class SecurityScanError(ForgeInputError):
    """Raised in strict mode when the scan reports any issue."""

    remediation = "Remove the flagged content, or re-run without --strict to continue with a warning."


def _iter_files(paths: Iterable[Path]) -> Iterable[Path]:
    for path in paths:
        path = Path(path)
        if path.is_file():
            yield path
        elif path.is_dir():
            yield from sorted(
                p for p in path.rglob("*") if p.is_file() and p.suffix in _SCANNED_SUFFIXES
            )


def scan_text(text: str, file: str, deny_list: Iterable[str] = ()) -> list[ScanIssue]:
    """Scan one file's text line by line."""
    deny = [term for term in deny_list if term]
    issues: list[ScanIssue] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        for term in deny:
            if term in line:
                issues.append(
                    ScanIssue(file=file, line=lineno, pattern=f"deny:{term}", severity=Severity.MEDIUM)
                )
        for name, regex, severity in _COMPILED:
            if regex.search(line):
                issues.append(ScanIssue(file=file, line=lineno, pattern=name, severity=severity))
    return issues


def scan_paths(paths: Iterable[Path], deny_list: Iterable[str] = ()) -> list[ScanIssue]:
    """Scan every text file under *paths* and return the issues found."""
    deny = list(deny_list)
    issues: list[ScanIssue] = []
    scanned = 0
    for file in _iter_files(paths):
        try:
            text = file.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError) as exc:
            logger.warning("Skipping unreadable file %s: %s", file, exc)
            continue
        scanned += 1
        issues.extend(scan_text(text, str(file), deny))
    logger.debug("Security scan: %d files, %d issues", scanned, len(issues))
    return issues
