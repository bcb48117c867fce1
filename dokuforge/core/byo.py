"""Bring-your-own (BYO) data: user-supplied JSON merged into compiled bundles.

A BYO payload is a JSON array of objects.  Imports are stored as
versions of the ``byo`` entity keyed by agent id, so the compiler reads
whatever ``byo/<agent>/current`` (or ``latest``) points at.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from dokuforge.core.layout import LATEST, EntityType
from dokuforge.core.version_store import NoActiveVersionError, VersionedArtifactStore
from dokuforge.errors import ForgeInputError

logger = logging.getLogger(__name__)

BYO_FILENAME = "byo.json"


class ByoValidationError(ForgeInputError):
    """Raised when BYO data is unreadable or not an array of objects."""

    remediation = "BYO files must contain a JSON array of objects."


def parse_byo(text: str, source: str = "<byo>") -> list[dict[str, Any]]:
    """Parse and validate BYO text."""
    try:
        items = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ByoValidationError(f"{source} is not valid JSON: {exc}") from exc
    if not isinstance(items, list):
        raise ByoValidationError(f"{source} must be a JSON array, got {type(items).__name__}.")
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ByoValidationError(
                f"{source}: item {index} is a {type(item).__name__}, expected an object."
            )
    return items


def import_byo(store: VersionedArtifactStore, agent_id: str, file: Path) -> Path:
    """Validate *file* and record it as a new BYO version aliased ``latest``."""
    file = Path(file)
    try:
        text = file.read_text(encoding="utf-8")
    except OSError as exc:
        raise ByoValidationError(f"Cannot read {file}: {exc}") from exc
    items = parse_byo(text, str(file))
    version_dir = store.put(EntityType.BYO, agent_id, items, aliases=(LATEST,), filename=BYO_FILENAME)
    logger.info("Imported %d BYO items for %s from %s", len(items), agent_id, file.name)
    return version_dir


def load_byo(
    store: VersionedArtifactStore, agent_id: str, *, force: bool = False
) -> tuple[list[dict[str, Any]], str | None]:
    """Load every BYO file of the agent's active version.

    Returns ``(items, version)``; an agent without BYO data yields
    ``([], None)``.  With *force*, unreadable files are skipped with a
    warning instead of aborting.
    """
    try:
        version_dir = store.resolve_active(EntityType.BYO, agent_id)
    except NoActiveVersionError:
        return [], None

    items: list[dict[str, Any]] = []
    for path in sorted(version_dir.glob("*.json")):
        try:
            items.extend(parse_byo(path.read_text(encoding="utf-8"), path.name))
        except (ByoValidationError, OSError) as exc:
            if not force:
                if isinstance(exc, ByoValidationError):
                    raise
                raise ByoValidationError(f"Cannot read {path}: {exc}") from exc
            logger.warning("Skipping BYO file %s: %s", path.name, exc)
    return items, version_dir.name
