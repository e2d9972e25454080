"""Atomic local writes for artifacts, asset indexes and manifests."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

TEMP_SUFFIX = ".tmp"


def _temp_prefix(name: str) -> str:
    return f".{name}."


def is_temp_leftover(file_name: str) -> bool:
    """Whether ``file_name`` looks like a sibling left behind by an interrupted ``write_atomic``."""
    if not (file_name.startswith(".") and file_name.endswith(TEMP_SUFFIX)):
        return False
    target, _, token = file_name[1 : -len(TEMP_SUFFIX)].rpartition(".")
    return bool(target and token)


def write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` next to ``path`` and swap it in; the old file survives any failure.

    Raises ``OSError`` on failure after cleaning up the temporary file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_name: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "wb",
            dir=path.parent,
            prefix=_temp_prefix(path.name),
            suffix=TEMP_SUFFIX,
            delete=False,
        ) as handle:
            tmp_name = handle.name
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
