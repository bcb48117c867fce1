"""Identity models — public half of a signing keypair plus who owns it."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IdentityRole(str, Enum):
    """Role a keypair plays in the pipeline.

    Each role has its own directory under ``keys/`` (``owners``,
    ``previewers``, ``certifiers``, ``compilers``, ``signers``).
    """

    OWNER = "owner"
    PREVIEWER = "previewer"
    CERTIFIER = "certifier"
    COMPILER = "compiler"
    SIGNER = "signer"

    @property
    def directory(self) -> str:
        return f"{self.value}s"


class TrustLevel(str, Enum):
    """Policy anchors describing how far an identity is trusted."""

    ROOT = "root"
    INTERNAL = "internal"
    CONTRIBUTOR = "contributor"
    PUBLIC = "public"
    UNTRUSTED = "untrusted"


TRUST_LEVEL_DESCRIPTIONS: dict[TrustLevel, str] = {
    TrustLevel.ROOT: "Unrestricted access. Reserved for governance-critical logic.",
    TrustLevel.INTERNAL: "Trusted by the core team; no irreversible actions.",
    TrustLevel.CONTRIBUTOR: "May suggest or simulate but not commit without review.",
    TrustLevel.PUBLIC: "May only view or suggest based on visible data.",
    TrustLevel.UNTRUSTED: "Sandboxed, third-party or experimental use only.",
}


class IdentityFields(BaseModel):
    """Human-supplied fields collected by the keygen wizard."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str = ""
    organization: str = ""
    trust_level: TrustLevel = TrustLevel.CONTRIBUTOR


class Identity(BaseModel):
    """A versioned, public identity.

    Private key material is stored next to the metadata file but is never
    part of this model, so it cannot leak into an artifact by accident.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: IdentityRole
    name: str
    email: str = ""
    organization: str = ""
    trust_level: TrustLevel = Field(default=TrustLevel.CONTRIBUTOR, alias="trustLevel")
    created_at: str = Field(alias="createdAt")
    key_version: str = Field(alias="keyVersion")
    public_key: str = Field(alias="publicKey")
    fingerprint: str
    algorithm: str = "ed25519"

    def to_json(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used on disk."""
        return self.model_dump(mode="json", by_alias=True)

    def block(self, prefix: str) -> dict[str, Any]:
        """Return the identity block embedded into artifacts.

        *prefix* names the role in the artifact, e.g. ``certifier`` yields
        ``{"certifierName": ..., "email": ..., ...}``.
        """
        return {
            f"{prefix}Name": self.name,
            "email": self.email,
            "organization": self.organization,
            "trustLevel": self.trust_level.value,
            "publicKey": self.public_key,
            "fingerprint": self.fingerprint,
            "keyVersion": self.key_version,
        }
