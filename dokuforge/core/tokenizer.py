"""Deterministic token estimation.

The estimator must be pure and identical between preview and certify -
drift detection compares a stored estimate with a fresh one, so any
non-determinism here would surface as false tamper alarms.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from typing import Any

from dokuforge.core.hasher import canonical_json_bytes

_PIECE = re.compile(r"\w+|[^\w\s]", re.UNICODE)

# Characters a BPE vocabulary typically merges into one token.
_CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate how many LLM tokens *text* would occupy.

    Word runs cost ``ceil(len / 4)`` tokens; each punctuation mark costs one.
    """
    total = 0
    for piece in _PIECE.findall(text or ""):
        if piece[0].isalnum() or piece[0] == "_":
            total += math.ceil(len(piece) / _CHARS_PER_TOKEN)
        else:
            total += 1
    return total


def serialize_sections(document: dict[str, Any], sections: Iterable[str]) -> str:
    """Canonical text of the named sections, as fed to the estimator."""
    return canonical_json_bytes({k: document.get(k) for k in sections}).decode("utf-8")


def estimate_document_tokens(document: dict[str, Any], sections: Iterable[str]) -> int:
    """Estimate tokens for the content sections of a document."""
    return estimate_tokens(serialize_sections(document, sections))


def estimate_section_tokens(
    document: dict[str, Any], sections: Iterable[str]
) -> dict[str, int]:
    """Per-section estimates, each section serialized on its own."""
    return {
        name: estimate_tokens(canonical_json_bytes(document.get(name)).decode("utf-8"))
        for name in sections
    }
