"""Validation helpers for origin URLs, remote paths and file names."""

from __future__ import annotations

import posixpath
from pathlib import PurePosixPath
from typing import Iterable
from urllib.parse import urlsplit


def validate_url(url: object, *, field_name: str = "URL") -> str:
    if not url or not isinstance(url, str):
        raise ValueError(f"{field_name} is required and must be a string")
    parts = urlsplit(url.strip())
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ValueError(f"{field_name} is not a valid URL: {url}")
    return url.strip()


def sanitize_path(input_path: object, *, field_name: str = "Path") -> str:
    """Normalize a remote relative path, rejecting traversal and absolute paths."""
    if not input_path or not isinstance(input_path, str):
        raise ValueError(f"{field_name} is required and must be a string")
    candidate = input_path.replace("\\", "/")
    if candidate.startswith("/") or PurePosixPath(candidate).is_absolute():
        raise ValueError(f"{field_name} must be a relative path: {input_path}")
    normalized = posixpath.normpath(candidate)
    if normalized == ".." or normalized.startswith("../") or "/../" in f"/{normalized}/":
        raise ValueError(f"{field_name} contains invalid directory traversal: {input_path}")
    if normalized in {"", "."}:
        raise ValueError(f"{field_name} is empty: {input_path}")
    return normalized


def validate_file_extension(
    filename: object,
    allowed_extensions: Iterable[str],
    *,
    field_name: str = "File",
) -> bool:
    if not filename or not isinstance(filename, str):
        raise ValueError(f"{field_name} name is required")
    allowed = [extension.lower() for extension in allowed_extensions]
    if not allowed:
        raise ValueError("Allowed extensions list is required")
    extension = PurePosixPath(filename).suffix.lower()
    if extension not in allowed:
        raise ValueError(
            f"{field_name} extension '{extension}' is not allowed. Allowed: {', '.join(allowed)}"
        )
    return True
