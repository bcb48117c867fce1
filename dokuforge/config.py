"""Environment-driven settings.

Reads ``DOKUFORGE_*`` environment variables and an optional ``.env`` file.
The CLI turns these into a ``PipelineConfig`` once per command.

Examples
--------
Override via environment::

    export DOKUFORGE_ROOT=/srv/agents/.dokuforge
    export DOKUFORGE_LOG_LEVEL=DEBUG
    export DOKUFORGE_CERTIFIER=release-bot
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ForgeSettings(BaseSettings):
    """Settings with environment variable overrides."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DOKUFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Workspace root holding data/, keys/ and ops/
    root: Path = Path(".dokuforge")

    # Default agent and identities
    agent: str | None = None
    owner: str | None = None
    previewer: str | None = None
    certifier: str | None = None
    compiler: str | None = None

    # Certification and budget defaults
    validity: str = "6m"
    default_target_model: str = "codex"
    token_warn_at: int = 4_000

    # Mode defaults
    self_heal: bool = False
    strict: bool = False
