"""Canonical hashing helpers for documents, sidecars and manifests."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    """SHA-256 of a file's bytes."""
    return sha256_hex(Path(path).read_bytes())


def compute_document_hash(
    document: dict[str, Any], unsigned_fields: Iterable[str] = ()
) -> str:
    """SHA-256 of a document, excluding ``metadata.sha256`` itself.

    *unsigned_fields* names further ``metadata`` keys that are written
    after the hash is computed (the signature of the stage sealing the
    document).
    """
    excluded = {"sha256", *unsigned_fields}
    d = {k: v for k, v in document.items() if k != "metadata"}
    meta = document.get("metadata")
    if isinstance(meta, dict):
        d["metadata"] = {k: v for k, v in meta.items() if k not in excluded}
    return sha256_hex(canonical_json_bytes(d))


def compute_content_hash(document: dict[str, Any], sections: Iterable[str]) -> str:
    """SHA-256 of the named content sections only."""
    return sha256_hex(canonical_json_bytes({k: document.get(k) for k in sections}))


def manifest_lines(directory: Path, names: Iterable[str]) -> list[str]:
    """Build ``<sha256>  <file>`` lines (sha256sum format) for *names*."""
    return [f"{sha256_file(directory / name)}  {name}" for name in sorted(names)]


def verify_manifest(directory: Path, manifest_name: str) -> list[str]:
    """Re-hash every file listed in a manifest.

    Returns the names whose digest no longer matches (or that vanished).
    An empty list means the directory is untouched.
    """
    mismatched: list[str] = []
    text = (directory / manifest_name).read_text(encoding="utf-8")
    for line in text.splitlines():
        if not line.strip():
            continue
        digest, _, name = line.partition("  ")
        path = directory / name
        if not path.is_file() or sha256_file(path) != digest:
            mismatched.append(name)
    return mismatched


def compute_entry_hash(entry_dict: dict[str, Any]) -> str:
    """SHA-256 of an audit entry, excluding the ``entry_hash`` field itself."""
    hashable = {k: v for k, v in entry_dict.items() if k != "entry_hash"}
    return sha256_hex(canonical_json_bytes(hashable))
