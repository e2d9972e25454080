from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from cmsmirror.models import MANIFEST_SCHEMA_VERSION, CacheEntry, CacheManifest
from cmsmirror.sync.state import ManifestStore


def _entry(key: str) -> CacheEntry:
    return CacheEntry(
        key=key,
        revision=f"rev-{key}",
        fingerprint=f"fp-{key}",
        size=12,
        checked_at="2026-01-01T00:00:00+00:00",
        fetched_at="2026-01-01T00:00:00+00:00",
        etag='"abc"',
    )


class ManifestStoreTests(unittest.TestCase):
    def test_missing_manifest_loads_as_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            manifest = ManifestStore(Path(tmpdir) / "state.json").load()
            self.assertEqual(manifest.version, MANIFEST_SCHEMA_VERSION)
            self.assertEqual(manifest.entries, {})
            self.assertIsNone(manifest.last_sync)

    def test_corrupt_or_foreign_manifest_loads_as_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            for body in ("{not json", "[]", json.dumps({"version": "1.0.0", "fonts": []})):
                path.write_text(body, encoding="utf-8")
                with self.assertLogs("cmsmirror.sync.state", level="WARNING"):
                    manifest = ManifestStore(path).load()
                self.assertEqual(manifest.entries, {})

    def test_save_then_load_preserves_entries_and_run_metadata(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = ManifestStore(Path(tmpdir) / "nested" / "state.json")
            manifest = CacheManifest(
                last_sync="2026-01-01T00:00:00+00:00",
                config_hash="cfg",
                entries={"b": _entry("b"), "a": _entry("a")},
            )
            self.assertTrue(store.save(manifest))

            payload = json.loads(store.path.read_text(encoding="utf-8"))
            self.assertEqual(payload["version"], MANIFEST_SCHEMA_VERSION)
            self.assertEqual(list(payload["entries"]), ["a", "b"])
            self.assertEqual(payload["entries"]["a"]["checkedAt"], "2026-01-01T00:00:00+00:00")

            loaded = store.load()
            self.assertEqual(loaded.config_hash, "cfg")
            self.assertEqual(loaded.entries["a"], _entry("a"))
            self.assertEqual(sorted(path.name for path in store.path.parent.iterdir()), ["state.json"])

    def test_malformed_entries_are_dropped(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            good = _entry("good").to_payload()
            path.write_text(
                json.dumps(
                    {
                        "version": MANIFEST_SCHEMA_VERSION,
                        "entries": {"good": good, "bad": {"size": 3}, "worse": "x"},
                    }
                ),
                encoding="utf-8",
            )
            manifest = ManifestStore(path).load()
            self.assertEqual(list(manifest.entries), ["good"])

    def test_failed_save_keeps_previous_manifest(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = ManifestStore(Path(tmpdir) / "state.json")
            self.assertTrue(store.save(CacheManifest(entries={"a": _entry("a")})))
            before = store.path.read_bytes()
            with mock.patch("cmsmirror.sync.storage.os.replace", side_effect=OSError("disk full")):
                with self.assertLogs("cmsmirror.sync.state", level="ERROR"):
                    saved = store.save(CacheManifest(entries={}))
            self.assertFalse(saved)
            self.assertEqual(store.path.read_bytes(), before)
            self.assertEqual(sorted(path.name for path in store.path.parent.iterdir()), ["state.json"])


if __name__ == "__main__":
    unittest.main()
