"""Orphan detection and removal for local mirror subtrees."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Iterator

from cmsmirror.errors import ReconciliationError
from cmsmirror.sync.storage import is_temp_leftover

logger = logging.getLogger(__name__)

KeyForPath = Callable[[str], str]


def default_key_for_path(rel_path: str) -> str:
    return rel_path


def strip_suffix_key(suffix: str) -> KeyForPath:
    """Naming convention where ``<key><suffix>`` is the artifact file name."""

    def _key(rel_path: str) -> str:
        if rel_path.endswith(suffix):
            return rel_path[: -len(suffix)]
        return rel_path

    return _key


def detect_key_collisions(
    paths_by_key: dict[str, str],
) -> dict[str, list[str]]:
    """Group remote keys that would be written to the same local path."""
    by_path: dict[str, list[str]] = {}
    for key, rel_path in paths_by_key.items():
        normalized = rel_path.replace("\\", "/").lower()
        by_path.setdefault(normalized, []).append(key)
    return {path: sorted(keys) for path, keys in by_path.items() if len(keys) > 1}


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def iter_local_files(local_root: Path) -> Iterator[Path]:
    def _raise(exc: OSError) -> None:
        raise exc

    for root, dirs, files in os.walk(local_root, onerror=_raise):
        root_path = Path(root)
        dirs[:] = sorted(d for d in dirs if not (root_path / d).is_symlink())
        for file_name in sorted(files):
            yield root_path / file_name


class Reconciler:
    def __init__(self, allowed_roots: Iterable[Path]) -> None:
        self.allowed_roots = [root.expanduser().resolve() for root in allowed_roots]

    def _check_allowed(self, local_root: Path) -> Path:
        resolved = local_root.expanduser().resolve()
        if not any(_is_within(resolved, root) for root in self.allowed_roots):
            raise ReconciliationError(f"Refusing to reconcile outside allowed roots: {resolved}")
        return resolved

    def reconcile(
        self,
        expected_keys: Iterable[str],
        local_root: Path,
        *,
        key_for_path: KeyForPath = default_key_for_path,
        keep: Iterable[str] = (),
    ) -> list[str]:
        root = self._check_allowed(local_root)
        if not root.exists():
            return []
        if not root.is_dir():
            raise ReconciliationError(f"Mirror root is not a directory: {root}")

        expected = set(expected_keys)
        kept = set(keep)
        removed: list[str] = []
        try:
            files = list(iter_local_files(root))
        except OSError as exc:
            raise ReconciliationError(f"Cannot list {root}: {exc}", cause=exc) from exc

        for path in files:
            rel_path = path.relative_to(root).as_posix()
            if rel_path in kept:
                continue
            key = key_for_path(rel_path)
            if key in expected:
                continue
            if is_temp_leftover(path.name):
                key = rel_path
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Could not remove orphan %s: %s", path, exc)
                continue
            removed.append(key)
            logger.debug("Removed orphan %s (key=%s)", rel_path, key)

        self._prune_empty_dirs(root)
        return sorted(removed)

    def _prune_empty_dirs(self, root: Path) -> None:
        for current, _dirs, files in os.walk(root, topdown=False):
            current_path = Path(current)
            if current_path == root or files:
                continue
            try:
                if not any(current_path.iterdir()):
                    current_path.rmdir()
            except OSError as exc:
                logger.warning("Could not remove empty directory %s: %s", current_path, exc)
