"""dokuforge pipeline stages: registry mapping stage_id to stage class.

Usage::

    from dokuforge.stages import get_stage

    stage = get_stage("preview", config)
    artifact = stage.assemble_preview("support-bot")
"""

from __future__ import annotations

from dokuforge.models.config import PipelineConfig
from dokuforge.stages.base import BaseStage, MissingIdentityError, StageExecutionError
from dokuforge.stages.certify import CertifyStage
from dokuforge.stages.compile import CompileStage
from dokuforge.stages.preview import PreviewStage

# ---------------------------------------------------------------------------
# Stage registry: stage_id -> stage class
# ---------------------------------------------------------------------------

STAGE_REGISTRY: dict[str, type[BaseStage]] = {
    "preview": PreviewStage,
    "certify": CertifyStage,
    "compile": CompileStage,
}

# Stages cannot be skipped; each consumes the previous one's output.
STAGE_ORDER: list[str] = ["preview", "certify", "compile"]


def get_stage(stage_id: str, config: PipelineConfig) -> BaseStage:
    """Instantiate and return a stage by its ``stage_id``.

    Raises ``KeyError`` if the stage_id is not registered.
    """
    try:
        cls = STAGE_REGISTRY[stage_id]
    except KeyError:
        raise KeyError(
            f"Unknown stage_id {stage_id!r}. "
            f"Registered stages: {sorted(STAGE_REGISTRY.keys())}"
        ) from None
    return cls(config)


__all__ = [
    # Base
    "BaseStage",
    "MissingIdentityError",
    "StageExecutionError",
    # Registry
    "STAGE_REGISTRY",
    "STAGE_ORDER",
    "get_stage",
    # Concrete stages
    "PreviewStage",
    "CertifyStage",
    "CompileStage",
]
