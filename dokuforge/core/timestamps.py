"""Timestamp-based version names (``<id>@<timestamp>``)."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from dokuforge.errors import ForgeInputError

_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}-\d{3}$")
_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_VALIDITY_RE = re.compile(r"^\s*(\d+)\s*([dwmy])\s*$", re.IGNORECASE)

_VALIDITY_UNITS_DAYS = {"d": 1, "w": 7, "m": 30, "y": 365}


class InvalidValidityError(ForgeInputError):
    """Raised for validity periods that are not ``<n>d|w|m|y``."""

    remediation = "Use a period such as 30d, 6m or 1y."


class InvalidNameError(ForgeInputError):
    """Raised for ids or timestamps that cannot be used as path segments."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_timestamp(now: datetime | None = None) -> str:
    """Return a filesystem-safe, sortable UTC timestamp.

    Example: ``2025-05-30_14-12-22-492``.
    """
    now = now or utc_now()
    return f"{now.strftime(_TIMESTAMP_FORMAT)}-{now.microsecond // 1000:03d}"


def parse_timestamp(value: str) -> datetime:
    """Inverse of ``make_timestamp``."""
    if not _TIMESTAMP_RE.match(value):
        raise InvalidNameError(f"Invalid timestamp {value!r}.")
    base, _, millis = value.rpartition("-")
    parsed = datetime.strptime(base, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    return parsed + timedelta(milliseconds=int(millis))


def is_timestamp(value: str) -> bool:
    return bool(_TIMESTAMP_RE.match(value))


def validate_id(value: str) -> str:
    """Reject ids that would escape their directory or break ``@`` parsing."""
    if not _ID_RE.match(value or "") or "@" in value:
        raise InvalidNameError(
            f"Invalid id {value!r}: use letters, digits, '.', '_' or '-'."
        )
    return value


def versioned_name(entity_id: str, timestamp: str) -> str:
    return f"{entity_id}@{timestamp}"


def split_versioned_name(name: str) -> tuple[str, str]:
    entity_id, sep, timestamp = name.partition("@")
    if not sep:
        raise InvalidNameError(f"{name!r} is not a versioned name.")
    return entity_id, timestamp


def parse_validity(period: str, start: datetime | None = None) -> tuple[datetime, datetime]:
    """Turn ``6m`` / ``1y`` / ``30d`` / ``2w`` into ``(valid_from, valid_until)``."""
    match = _VALIDITY_RE.match(period or "")
    if not match or int(match.group(1)) <= 0:
        raise InvalidValidityError(f"Invalid validity period {period!r}.")
    start = start or utc_now()
    days = int(match.group(1)) * _VALIDITY_UNITS_DAYS[match.group(2).lower()]
    return start, start + timedelta(days=days)
