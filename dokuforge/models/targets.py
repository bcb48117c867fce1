"""Static registry of downstream model targets and their token budgets."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ModelTarget(BaseModel):
    """Token budget for one downstream model (or model variant)."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    max_token_load: int
    ideal_briefing_size: int
    notes: str = ""


_T = ModelTarget

MODEL_TARGETS: dict[str, ModelTarget] = {
    "claude": _T(
        key="claude", label="Claude 3", max_token_load=100_000, ideal_briefing_size=8_000,
        notes="Handles large contexts; prefers flat, well-structured markdown.",
    ),
    "codex": _T(
        key="codex", label="Codex CLI", max_token_load=4_000, ideal_briefing_size=2_000,
        notes="Prefers short code-oriented prompts.",
    ),
    "gpt4": _T(
        key="gpt4", label="GPT-4 Turbo", max_token_load=128_000, ideal_briefing_size=12_000,
        notes="Large input, but clarity beats quantity.",
    ),
    "gemini:pro-1.5": _T(
        key="gemini:pro-1.5", label="Gemini 1.5 Pro", max_token_load=2_097_152,
        ideal_briefing_size=12_000,
    ),
    "gemini:flash-1.5": _T(
        key="gemini:flash-1.5", label="Gemini 1.5 Flash", max_token_load=1_048_576,
        ideal_briefing_size=8_000,
    ),
    "gemini:pro-2.5": _T(
        key="gemini:pro-2.5", label="Gemini 2.5 Pro", max_token_load=1_048_576,
        ideal_briefing_size=16_000,
    ),
    "llama": _T(
        key="llama", label="LLaMA 3", max_token_load=32_000, ideal_briefing_size=6_000,
    ),
    "mistral:7b": _T(
        key="mistral:7b", label="Mistral 7B", max_token_load=32_000, ideal_briefing_size=6_000,
    ),
    "mixtral": _T(
        key="mixtral", label="Mixtral 8x7B", max_token_load=32_000, ideal_briefing_size=8_000,
    ),
    "grok": _T(
        key="grok", label="xAI Grok", max_token_load=128_000, ideal_briefing_size=8_000,
    ),
}

# Family name -> variant used when only the family is given.
DEFAULT_VARIANTS: dict[str, str] = {
    "gemini": "pro-1.5",
    "mistral": "7b",
}

DEFAULT_TARGET = "codex"


def lookup_target(name: str | None, default: str = DEFAULT_TARGET) -> ModelTarget:
    """Resolve ``name`` or ``name:variant`` to a registry entry.

    Unknown or empty names fall back to *default*.
    """
    key = (name or "").strip().lower()
    if key in DEFAULT_VARIANTS:
        key = f"{key}:{DEFAULT_VARIANTS[key]}"
    if key in MODEL_TARGETS:
        return MODEL_TARGETS[key]
    return MODEL_TARGETS.get(default, MODEL_TARGETS[DEFAULT_TARGET])
