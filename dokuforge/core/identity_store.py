"""Named, versioned Ed25519 identities.

Layout::

    keys/<role>s/<name>/<timestamp>/<name>.meta.json     public identity
    keys/<role>s/<name>/<timestamp>/<name>.public.key    hex verify key
    keys/<role>s/<name>/<timestamp>/<name>.private.key   hex seed, mode 0600
    keys/<role>s/<name>/latest -> <timestamp>

Key versions are append-only; ``latest`` is a pointer that moves to the
newest version.  The ``Identity`` model never carries the private half;
``load_private_key`` is the only way to read it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from dokuforge.core.fsio import PRIVATE, atomic_symlink, atomic_write_json, atomic_write_text, read_json
from dokuforge.core.layout import LATEST, ForgeLayout
from dokuforge.core.signing import generate_keypair, key_fingerprint, public_key_for
from dokuforge.core.timestamps import is_timestamp, make_timestamp, validate_id
from dokuforge.errors import ForgeInputError
from dokuforge.models.identity import Identity, IdentityFields, IdentityRole

logger = logging.getLogger(__name__)


class DuplicateIdentityError(ForgeInputError):
    """Raised when a key pair already exists at the target path."""


class IdentityNotFoundError(ForgeInputError):
    """Raised when no identity directory matches a name and version."""


class IdentityStore:
    """Create and resolve identities under ``keys/``.

    Parameters
    ----------
    layout:
        The workspace layout.
    """

    def __init__(self, layout: ForgeLayout) -> None:
        self._layout = layout

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_identity(
        self,
        role: IdentityRole,
        fields: IdentityFields,
        *,
        timestamp: str | None = None,
        keypair: tuple[str, str] | None = None,
    ) -> Identity:
        """Generate a key pair and persist a new identity version.

        Parameters
        ----------
        role:
            Role directory the identity is filed under.
        fields:
            Name, email, organization and trust level.
        timestamp:
            Key version; defaults to *now*.  An existing version at the
            same path raises ``DuplicateIdentityError``.
        keypair:
            ``(private_hex, public_hex)`` to store instead of a fresh pair
            (used to rotate a version onto an imported key).
        """
        role = IdentityRole(role)
        name = validate_id(fields.name)
        key_version = timestamp or make_timestamp()
        if not is_timestamp(key_version):
            raise IdentityNotFoundError(f"Invalid key version {key_version!r}.")

        version_dir = self._name_dir(role, name) / key_version
        if version_dir.exists():
            raise DuplicateIdentityError(
                f"A key pair for {role.value} {name!r} already exists at {version_dir}.",
                remediation="Wait a moment and re-run keygen, or pick a different name.",
            )

        if keypair is None:
            private_key, public_key = generate_keypair()
        else:
            private_key, public_key = keypair
            if public_key_for(private_key) != public_key:
                raise ForgeInputError("Supplied key pair halves do not match.")

        identity = Identity(
            role=role,
            name=name,
            email=fields.email,
            organization=fields.organization,
            trust_level=fields.trust_level,
            created_at=key_version,
            key_version=key_version,
            public_key=public_key,
            fingerprint=key_fingerprint(public_key),
        )

        version_dir.mkdir(parents=True)
        atomic_write_text(version_dir / f"{name}.private.key", private_key, PRIVATE)
        atomic_write_text(version_dir / f"{name}.public.key", public_key)
        atomic_write_json(version_dir / f"{name}.meta.json", identity.to_json())
        atomic_symlink(self._name_dir(role, name) / LATEST, key_version)

        logger.info(
            "Created %s identity %s (key %s, fingerprint %s)",
            role.value,
            name,
            key_version,
            identity.fingerprint[:16],
        )
        return identity

    # ------------------------------------------------------------------
    # Resolve
    # ------------------------------------------------------------------

    def resolve_identity(
        self,
        name: str,
        version: str = LATEST,
        roles: Iterable[IdentityRole] = tuple(IdentityRole),
    ) -> Identity:
        """Load the identity *name* at *version*.

        *roles* are searched in order; the first role directory holding a
        matching version wins.
        """
        for role in roles:
            version_dir = self._version_dir(IdentityRole(role), name, version)
            if version_dir is not None:
                return Identity.model_validate(read_json(version_dir / f"{name}.meta.json"))
        raise IdentityNotFoundError(
            f"No identity {name!r} (version {version}) among "
            f"{', '.join(IdentityRole(r).directory for r in roles)}.",
            remediation=f"Run `dokuforge keygen <role> --name {name}` first.",
        )

    def key_path(self, identity: Identity) -> Path:
        """Path of the private key file backing *identity* (not its contents)."""
        return (
            self._name_dir(identity.role, identity.name)
            / identity.key_version
            / f"{identity.name}.private.key"
        )

    def load_private_key(self, identity: Identity) -> str:
        """Return the hex private seed for *identity*."""
        path = self.key_path(identity)
        if not path.is_file():
            raise IdentityNotFoundError(
                f"Private key for {identity.role.value} {identity.name!r} "
                f"(version {identity.key_version}) is missing."
            )
        return path.read_text(encoding="utf-8").strip()

    def list_names(self, role: IdentityRole) -> list[str]:
        """Names that have at least one resolvable ``latest`` identity."""
        role_dir = self._layout.role_dir(role)
        if not role_dir.is_dir():
            return []
        return sorted(
            p.name
            for p in role_dir.iterdir()
            if p.is_dir() and self._version_dir(IdentityRole(role), p.name, LATEST) is not None
        )

    def list_identities(self, role: IdentityRole) -> list[Identity]:
        """Latest identity of every name filed under *role*."""
        return [
            self.resolve_identity(name, roles=(IdentityRole(role),))
            for name in self.list_names(role)
        ]

    def list_key_versions(self, role: IdentityRole, name: str) -> list[str]:
        name_dir = self._name_dir(IdentityRole(role), name)
        if not name_dir.is_dir():
            return []
        return sorted(
            p.name for p in name_dir.iterdir() if p.is_dir() and not p.is_symlink()
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _name_dir(self, role: IdentityRole, name: str) -> Path:
        return self._layout.role_dir(role) / name

    def _version_dir(self, role: IdentityRole, name: str, version: str) -> Path | None:
        name_dir = self._name_dir(role, name)
        candidate = name_dir / version
        if version == LATEST:
            if not candidate.is_symlink():
                return None
            candidate = name_dir / candidate.resolve().name
        if candidate.is_dir() and (candidate / f"{name}.meta.json").is_file():
            return candidate
        return None
