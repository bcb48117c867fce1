"""Pipeline configuration handed to every stage constructor.

All mode flags are resolved once at the command boundary and carried here
as named fields; no stage reads process arguments or the environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from dokuforge.models.targets import DEFAULT_TARGET
from dokuforge.models.versioning import VersionPin

if TYPE_CHECKING:
    from dokuforge.config import ForgeSettings


class PipelineConfig(BaseModel):
    """Explicit configuration for one pipeline invocation."""

    model_config = ConfigDict(frozen=True)

    root: Path = Path(".dokuforge")

    # Default identity names; ``None`` means "the only one available".
    owner: str | None = None
    previewer: str | None = None
    certifier: str | None = None
    compiler: str | None = None

    validity: str = "6m"
    default_target_model: str = DEFAULT_TARGET
    token_warn_at: int = 4_000
    experimental: bool = False

    # Mode flags
    self_heal: bool = False  # create stub mock files, rewrite plan paths
    doctor: bool = False  # run every gate, write nothing
    strict: bool = False  # warnings become hard failures
    force: bool = False  # compile skips unreadable BYO files

    version_pin: VersionPin = VersionPin()

    @classmethod
    def from_settings(cls, settings: ForgeSettings, **overrides: Any) -> PipelineConfig:
        """Build a config from environment settings plus CLI overrides.

        Overrides whose value is ``None`` are ignored so that unset CLI
        options fall through to the environment.
        """
        values: dict[str, Any] = {
            "root": settings.root,
            "owner": settings.owner,
            "previewer": settings.previewer,
            "certifier": settings.certifier,
            "compiler": settings.compiler,
            "validity": settings.validity,
            "default_target_model": settings.default_target_model,
            "token_warn_at": settings.token_warn_at,
            "self_heal": settings.self_heal,
            "strict": settings.strict,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
