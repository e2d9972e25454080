"""Durable per-domain manifest of cache state."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from cmsmirror.errors import CacheStateError
from cmsmirror.models import MANIFEST_SCHEMA_VERSION, CacheEntry, CacheManifest
from cmsmirror.sync.storage import write_atomic

logger = logging.getLogger(__name__)


def _parse_manifest(raw: str) -> CacheManifest:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CacheStateError("manifest is not valid JSON", cause=exc) from exc
    if not isinstance(payload, dict):
        raise CacheStateError("manifest root is not an object")
    version = payload.get("version")
    if version != MANIFEST_SCHEMA_VERSION:
        raise CacheStateError(f"unsupported manifest version: {version!r}")

    entries: dict[str, CacheEntry] = {}
    raw_entries = payload.get("entries", {})
    if not isinstance(raw_entries, dict):
        raise CacheStateError("manifest entries is not an object")
    for key, item in raw_entries.items():
        if not isinstance(item, dict):
            continue
        try:
            entries[str(key)] = CacheEntry.from_payload(str(key), item)
        except (KeyError, TypeError, ValueError):
            logger.debug("Dropping malformed manifest entry: %s", key)
    last_sync = payload.get("lastSync")
    config_hash = payload.get("configHash")
    return CacheManifest(
        version=MANIFEST_SCHEMA_VERSION,
        last_sync=str(last_sync) if last_sync else None,
        config_hash=str(config_hash) if config_hash else None,
        entries=entries,
    )


class ManifestStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> CacheManifest:
        if not self.path.exists():
            logger.info("No manifest at %s, starting from empty state", self.path)
            return CacheManifest()
        try:
            return _parse_manifest(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, CacheStateError) as exc:
            logger.warning("Invalid manifest %s, starting fresh: %s", self.path, exc)
            return CacheManifest()

    def save(self, manifest: CacheManifest) -> bool:
        body = json.dumps(manifest.to_payload(), indent=2, sort_keys=True)
        try:
            write_atomic(self.path, body.encode("utf-8"))
        except OSError as exc:
            logger.error("Error saving manifest %s: %s", self.path, exc)
            return False
        return True
