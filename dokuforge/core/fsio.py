"""Atomic file writes.

Every artifact is written to a temporary file in the destination
directory, fsync'd, chmod'd and moved into place with ``os.replace``.
A reader therefore sees either the old file or the complete new one.
"""

from __future__ import annotations

import json
import os
import stat
import tempfile
import uuid
from pathlib import Path
from typing import Any

READ_ONLY = stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH  # 0o444
PRIVATE = stat.S_IRUSR | stat.S_IWUSR  # 0o600
DEFAULT = 0o644


def atomic_write_bytes(path: Path, data: bytes, mode: int = DEFAULT) -> Path:
    """Write *data* to *path* atomically and set its permission bits."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def atomic_write_text(path: Path, text: str, mode: int = DEFAULT) -> Path:
    return atomic_write_bytes(path, text.encode("utf-8"), mode)


def atomic_write_json(path: Path, payload: Any, mode: int = DEFAULT) -> Path:
    """Pretty-printed JSON, key order preserved so ``metadata`` stays last."""
    return atomic_write_text(path, json.dumps(payload, indent=2) + "\n", mode)


def read_json(path: Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def remove_file(path: Path) -> None:
    """Delete *path* even if it was written read-only."""
    path = Path(path)
    if path.exists() or path.is_symlink():
        path.unlink()


def append_line(path: Path, line: str) -> None:
    """Append one line to a log file (created on demand)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(line.rstrip("\n") + "\n")


def atomic_symlink(link: Path, target: str) -> Path:
    """Point *link* at *target* (a relative path), replacing any old link.

    A temporary sibling link is created first and renamed over *link*,
    so *link* is never missing or dangling while it is repointed.
    """
    link = Path(link)
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp = link.with_name(f".{link.name}.{uuid.uuid4().hex}.tmp")
    os.symlink(target, tmp, target_is_directory=True)
    try:
        os.replace(tmp, link)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return link
