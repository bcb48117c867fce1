"""Append-only versioned storage for mutable source entities.

Every entity version lives in its own directory
``data/<type>/<id>@<timestamp>/`` and is never modified by the store once
written.  Which version is active is decided by two aliases,
``data/<type>/<id>/current`` and ``data/<type>/<id>/latest``, each a
relative symlink to a sibling version directory.

Resolution prefers ``current`` and falls back to ``latest``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from pathlib import Path
from typing import Any

from dokuforge.core.fsio import atomic_symlink, atomic_write_bytes, atomic_write_json, read_json
from dokuforge.core.layout import ALIASES, CURRENT, LATEST, EntityType, ForgeLayout
from dokuforge.core.timestamps import (
    InvalidNameError,
    is_timestamp,
    make_timestamp,
    parse_timestamp,
    validate_id,
    versioned_name,
)
from dokuforge.errors import ForgeInputError

logger = logging.getLogger(__name__)


class NoActiveVersionError(ForgeInputError):
    """Raised when neither ``current`` nor ``latest`` resolves."""


class InvalidAliasError(ForgeInputError):
    """Raised when an alias would point anywhere but a sibling version dir."""


class VersionExistsError(ForgeInputError):
    """Raised when a version directory already exists (versions are immutable)."""


class VersionedArtifactStore:
    """Versioned entity storage rooted at a workspace's ``data/`` directory.

    Parameters
    ----------
    layout:
        The workspace layout.  Nothing is created until the first write.
    """

    def __init__(self, layout: ForgeLayout) -> None:
        self._layout = layout

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_version(
        self,
        entity_type: EntityType,
        entity_id: str,
        timestamp: str,
        payload: Any,
        *,
        filename: str | None = None,
        extra_files: Mapping[str, bytes] | None = None,
    ) -> Path:
        """Create ``<type>/<id>@<timestamp>/`` and write *payload* into it.

        *extra_files* maps relative paths to raw bytes written alongside
        the payload.  Aliases are left untouched.  Raises
        ``VersionExistsError`` if the directory is already present.
        """
        entity_type = EntityType(entity_type)
        validate_id(entity_id)
        if not is_timestamp(timestamp):
            raise InvalidAliasError(f"Invalid version timestamp {timestamp!r}.")

        version_dir = self._version_dir(entity_type, entity_id, timestamp)
        if version_dir.exists():
            raise VersionExistsError(
                f"{entity_type.value}/{version_dir.name} already exists.",
                remediation="Versions are immutable; write a new timestamp instead.",
            )
        for relative in extra_files or {}:
            target = (version_dir / relative).resolve()
            if not target.is_relative_to(version_dir.resolve()):
                raise InvalidNameError(
                    f"Extra file {relative!r} would land outside {version_dir.name}."
                )
        version_dir.mkdir(parents=True)

        name = filename or entity_type.payload_file or f"{entity_id}.json"
        atomic_write_json(version_dir / name, payload)
        for relative, data in (extra_files or {}).items():
            atomic_write_bytes(version_dir / relative, data)
        logger.debug("Wrote %s/%s/%s", entity_type.value, version_dir.name, name)
        return version_dir

    def set_alias(
        self,
        entity_type: EntityType,
        entity_id: str,
        alias: str,
        version: str,
    ) -> Path:
        """Atomically repoint ``<type>/<id>/<alias>`` at a version directory.

        *version* is a timestamp or a full ``<id>@<timestamp>`` name.  The
        target is validated before the alias is touched, so a bad target
        leaves any existing alias exactly as it was.
        """
        entity_type = EntityType(entity_type)
        validate_id(entity_id)
        if alias not in ALIASES:
            raise InvalidAliasError(
                f"Unknown alias {alias!r}; expected one of {', '.join(ALIASES)}."
            )

        target_name = self._target_name(entity_id, version)
        target_dir = self._layout.entity_dir(entity_type) / target_name
        if target_dir.is_symlink() or not target_dir.is_dir():
            raise InvalidAliasError(
                f"Cannot point {entity_id}/{alias} at {entity_type.value}/{target_name}: "
                "no such version directory.",
                remediation=f"List versions with `ls {self._layout.entity_dir(entity_type)}`.",
            )

        link = self._alias_dir(entity_type, entity_id) / alias
        if link.exists() and not link.is_symlink():
            raise InvalidAliasError(f"{link} exists and is not an alias.")

        atomic_symlink(link, f"../{target_name}")
        logger.info("%s/%s/%s -> %s", entity_type.value, entity_id, alias, target_name)
        return link

    def put(
        self,
        entity_type: EntityType,
        entity_id: str,
        payload: Any,
        *,
        aliases: tuple[str, ...] = (LATEST,),
        filename: str | None = None,
        extra_files: Mapping[str, bytes] | None = None,
    ) -> Path:
        """Write a new version stamped *now* and point *aliases* at it."""
        entity_type = EntityType(entity_type)
        timestamp = make_timestamp()
        while self._version_dir(entity_type, entity_id, timestamp).exists():
            # Two writes inside one millisecond: move to the next free slot.
            timestamp = make_timestamp(parse_timestamp(timestamp) + timedelta(milliseconds=1))
        version_dir = self.write_version(
            entity_type, entity_id, timestamp, payload, filename=filename, extra_files=extra_files
        )
        for alias in aliases:
            self.set_alias(entity_type, entity_id, alias, timestamp)
        return version_dir

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def resolve_alias(
        self, entity_type: EntityType, entity_id: str, alias: str
    ) -> Path | None:
        """Return the version directory *alias* points at, or ``None``."""
        entity_type = EntityType(entity_type)
        link = self._alias_dir(entity_type, entity_id) / alias
        if not link.is_symlink():
            return None
        entity_dir = self._layout.entity_dir(entity_type).resolve()
        target = link.resolve()
        if target.parent != entity_dir or not target.is_dir():
            logger.warning("Ignoring alias %s: it does not resolve to a version directory", link)
            return None
        return self._layout.entity_dir(entity_type) / target.name

    def resolve_active(self, entity_type: EntityType, entity_id: str) -> Path:
        """Return the active version directory (``current``, then ``latest``)."""
        entity_type = EntityType(entity_type)
        for alias in (CURRENT, LATEST):
            resolved = self.resolve_alias(entity_type, entity_id, alias)
            if resolved is not None:
                return resolved
        raise NoActiveVersionError(
            f"No active {entity_type.value} version for {entity_id!r}: "
            "neither 'current' nor 'latest' resolves.",
            remediation=f"Run `dokuforge put {entity_type.value} {entity_id} <file.json>`.",
        )

    def active_version(self, entity_type: EntityType, entity_id: str) -> str:
        """Name (``<id>@<timestamp>``) of the active version directory."""
        return self.resolve_active(entity_type, entity_id).name

    def read_active(self, entity_type: EntityType, entity_id: str) -> Any:
        """Load the payload of the active version."""
        entity_type = EntityType(entity_type)
        version_dir = self.resolve_active(entity_type, entity_id)
        return read_json(self.payload_path(entity_type, version_dir))

    def payload_path(self, entity_type: EntityType, version_dir: Path) -> Path:
        """Payload file inside *version_dir*."""
        entity_type = EntityType(entity_type)
        if entity_type.payload_file is not None:
            return version_dir / entity_type.payload_file
        files = sorted(version_dir.glob("*.json"))
        if not files:
            raise NoActiveVersionError(f"{version_dir} holds no JSON payload.")
        return files[0]

    def list_versions(self, entity_type: EntityType, entity_id: str) -> list[str]:
        """Timestamps of every stored version, oldest first."""
        entity_dir = self._layout.entity_dir(entity_type)
        if not entity_dir.is_dir():
            return []
        prefix = f"{entity_id}@"
        return sorted(
            p.name[len(prefix):]
            for p in entity_dir.iterdir()
            if p.is_dir() and not p.is_symlink() and p.name.startswith(prefix)
        )

    def list_ids(self, entity_type: EntityType) -> list[str]:
        """Every entity id that has at least one stored version."""
        entity_dir = self._layout.entity_dir(entity_type)
        if not entity_dir.is_dir():
            return []
        return sorted(
            {p.name.partition("@")[0] for p in entity_dir.iterdir() if "@" in p.name}
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _version_dir(self, entity_type: EntityType, entity_id: str, timestamp: str) -> Path:
        return self._layout.entity_dir(entity_type) / versioned_name(entity_id, timestamp)

    def _alias_dir(self, entity_type: EntityType, entity_id: str) -> Path:
        return self._layout.entity_dir(entity_type) / entity_id

    @staticmethod
    def _target_name(entity_id: str, version: str) -> str:
        if "@" in version:
            owner, _, timestamp = version.partition("@")
            if owner != entity_id:
                raise InvalidAliasError(
                    f"Alias for {entity_id!r} cannot point at another entity's "
                    f"version {version!r}."
                )
        else:
            timestamp = version
        if not is_timestamp(timestamp):
            raise InvalidAliasError(f"Invalid version timestamp {timestamp!r}.")
        return versioned_name(entity_id, timestamp)
