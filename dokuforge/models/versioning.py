"""Version pins stamped into every artifact's ``metadata`` block."""

from pydantic import BaseModel, ConfigDict


class VersionPin(BaseModel):
    """Records the tool and schema versions that produced an artifact.

    Every preview, certificate and compiled bundle carries these values so
    a verifier can tell which rules were in force when it was written.
    """

    model_config = ConfigDict(frozen=True)

    tool_version: str = "0.3.0"
    schema_version: str = "v1.0.0"
    schema_uri: str = "https://dokugent.org/schema/v1.json"
    generator: str = "dokuforge@0.3.0"
    preview_format: str = "doku-preview"
    cert_format: str = "doku-cert"
    compiled_format: str = "doku-compiled"
