"""Shape of pipeline documents and the hashes that seal them.

A document grows stage by stage and keeps ``metadata`` as its last key::

    preview    {agent, plan, criteria, conventions, owner, previewer,
                sourceVersions, estimatedTokens, sha256, metadata}
    certified  preview content + {certifier, metadata{validFrom, validUntil,
                certifierKeyVersion, certifierFingerprint, sha256, ...}}
    compiled   certified + {compiler, compiledAt, globalByo,
                metadata{version, certifiedSha256, compilerSignature, ...}}

Each stage signs a hash computed with ``metadata.sha256`` and its own
signature field left out.
"""

from __future__ import annotations

import copy
from typing import Any

from dokuforge.core.hasher import compute_content_hash, compute_document_hash
from dokuforge.core.tokenizer import estimate_document_tokens
from dokuforge.models.versioning import VersionPin

# Sections covered by ``estimatedTokens`` and the top-level content ``sha256``.
CONTENT_SECTIONS: tuple[str, ...] = (
    "agent",
    "plan",
    "criteria",
    "conventions",
    "owner",
    "previewer",
    "sourceVersions",
)

# Transport-only keys moved out of payloads into ``sourceVersions``.
TRANSPORT_FIELDS: tuple[str, ...] = ("cliVersion", "schemaVersion", "createdVia")

# Top-level keys the compiler adds on top of a certificate.
COMPILE_SECTIONS: tuple[str, ...] = ("compiler", "compiledAt", "globalByo")

# Metadata keys the compiler adds (``sha256`` is replaced, see below).
COMPILE_METADATA_KEYS: tuple[str, ...] = (
    "version",
    "bundleFormat",
    "compilerKeyVersion",
    "compilerFingerprint",
    "byoVersion",
    "certifiedSha256",
    "compilerSignature",
)

PREVIEWER_SIGNATURE = "previewerSignature"
CERTIFIER_SIGNATURE = "certifierSignature"
COMPILER_SIGNATURE = "compilerSignature"


def strip_transport_fields(payload: Any) -> tuple[Any, dict[str, Any]]:
    """Split a payload into its clean body and its transport-only fields."""
    if not isinstance(payload, dict):
        return payload, {}
    clean = {k: v for k, v in payload.items() if k not in TRANSPORT_FIELDS}
    stripped = {k: payload[k] for k in TRANSPORT_FIELDS if k in payload}
    return clean, stripped


def base_metadata(pin: VersionPin, fmt: str, generated_at: str) -> dict[str, Any]:
    """Fields every artifact's ``metadata`` block starts with."""
    return {
        "format": fmt,
        "schema": pin.schema_version,
        "schemaUri": pin.schema_uri,
        "toolVersion": pin.tool_version,
        "generator": pin.generator,
        "generatedAt": generated_at,
    }


# ---------------------------------------------------------------------------
# Integrity signals
# ---------------------------------------------------------------------------


def content_tokens(document: dict[str, Any]) -> int:
    """Token estimate over the content sections (the drift signal)."""
    return estimate_document_tokens(document, CONTENT_SECTIONS)


def content_sha256(document: dict[str, Any]) -> str:
    """Hash over the content sections (the strong drift signal)."""
    return compute_content_hash(document, CONTENT_SECTIONS)


def certified_hash(document: dict[str, Any]) -> str:
    """Hash the certifier signs."""
    return compute_document_hash(document, (CERTIFIER_SIGNATURE,))


def compiled_hash(document: dict[str, Any]) -> str:
    """Hash the compiler signs."""
    return compute_document_hash(document, (COMPILER_SIGNATURE,))


def certified_view(compiled: dict[str, Any]) -> dict[str, Any]:
    """Rebuild the certificate a compiled bundle was produced from."""
    view = {
        k: copy.deepcopy(v)
        for k, v in compiled.items()
        if k not in COMPILE_SECTIONS and k != "metadata"
    }
    meta = compiled.get("metadata", {})
    cert_meta = {k: copy.deepcopy(v) for k, v in meta.items() if k not in COMPILE_METADATA_KEYS}
    cert_meta["sha256"] = meta.get("certifiedSha256", "")
    view["metadata"] = cert_meta
    return view
