from __future__ import annotations

import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from cmsmirror.errors import ReconciliationError
from cmsmirror.sync.reconcile import Reconciler, detect_key_collisions, strip_suffix_key
from cmsmirror.sync.storage import is_temp_leftover, write_atomic


def _touch(root: Path, rel_path: str, body: str = "x") -> Path:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")
    return path


class ReconcilerTests(unittest.TestCase):
    def test_removes_exactly_the_orphans(self) -> None:
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir) / "media"
            for name in ("A", "B", "C"):
                _touch(root, name)
            reconciler = Reconciler([root])

            removed = reconciler.reconcile({"A", "C"}, root)
            self.assertEqual(removed, ["B"])
            self.assertEqual(sorted(path.name for path in root.iterdir()), ["A", "C"])

            self.assertEqual(reconciler.reconcile({"A", "C"}, root), [])
            self.assertEqual(sorted(path.name for path in root.iterdir()), ["A", "C"])

    def test_suffix_naming_and_empty_directories(self) -> None:
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir) / "content"
            _touch(root, "home.json")
            _touch(root, "blog/post.json")
            _touch(root, "blog/archive/old.json")

            removed = Reconciler([root]).reconcile(
                {"home", "blog/post"},
                root,
                key_for_path=strip_suffix_key(".json"),
            )
            self.assertEqual(removed, ["blog/archive/old"])
            self.assertFalse((root / "blog" / "archive").exists())
            self.assertTrue((root / "blog" / "post.json").exists())
            self.assertTrue(root.is_dir())

    def test_keep_files_and_temp_leftovers(self) -> None:
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir) / "fonts"
            _touch(root, "fonts.json")
            _touch(root, "inter.woff2")
            _touch(root, ".inter.woff2.abc123.tmp")

            removed = Reconciler([root]).reconcile({"inter.woff2"}, root, keep=("fonts.json",))
            self.assertEqual(removed, [".inter.woff2.abc123.tmp"])
            self.assertEqual(
                sorted(path.name for path in root.iterdir()),
                ["fonts.json", "inter.woff2"],
            )

    def test_expected_files_with_tmp_extension_are_kept(self) -> None:
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir) / "media"
            _touch(root, "backup.tmp")
            _touch(root, "exports/.config.tmp")
            _touch(root, ".backup.tmp.k2j4h8sd.tmp")

            reconciler = Reconciler([root])
            removed = reconciler.reconcile({"backup.tmp", "exports/.config.tmp"}, root)

            self.assertEqual(removed, [".backup.tmp.k2j4h8sd.tmp"])
            self.assertTrue((root / "backup.tmp").exists())
            self.assertTrue((root / "exports" / ".config.tmp").exists())
            self.assertEqual(
                reconciler.reconcile({"backup.tmp", "exports/.config.tmp"}, root),
                [],
            )

    def test_missing_root_is_a_no_op(self) -> None:
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir) / "media"
            self.assertEqual(Reconciler([root]).reconcile({"A"}, root), [])

    def test_refuses_roots_outside_allowed_set(self) -> None:
        with TemporaryDirectory() as tmpdir:
            allowed = Path(tmpdir) / "public" / "media"
            outside = Path(tmpdir) / "src"
            _touch(outside, "main.py")
            with self.assertRaises(ReconciliationError):
                Reconciler([allowed]).reconcile(set(), outside)
            self.assertTrue((outside / "main.py").exists())

    def test_root_that_is_a_file_is_rejected(self) -> None:
        with TemporaryDirectory() as tmpdir:
            root = _touch(Path(tmpdir), "media")
            with self.assertRaises(ReconciliationError):
                Reconciler([root]).reconcile(set(), root)


class TempLeftoverTests(unittest.TestCase):
    def test_only_atomic_write_siblings_match(self) -> None:
        self.assertTrue(is_temp_leftover(".inter.woff2.abc123.tmp"))
        self.assertFalse(is_temp_leftover("backup.tmp"))
        self.assertFalse(is_temp_leftover(".config.tmp"))
        self.assertFalse(is_temp_leftover("inter.woff2"))

    def test_atomic_write_leaves_no_leftover(self) -> None:
        with TemporaryDirectory() as tmpdir:
            target = Path(tmpdir) / "backup.tmp"
            write_atomic(target, b"data")
            self.assertEqual([path.name for path in Path(tmpdir).iterdir()], ["backup.tmp"])
            self.assertEqual(target.read_bytes(), b"data")


class KeyCollisionTests(unittest.TestCase):
    def test_case_insensitive_collisions_are_grouped(self) -> None:
        collisions = detect_key_collisions(
            {
                "images/A.jpg": "images/A.jpg",
                "images/a.jpg": "images/a.jpg",
                "images/b.jpg": "images/b.jpg",
            }
        )
        self.assertEqual(collisions, {"images/a.jpg": ["images/A.jpg", "images/a.jpg"]})


if __name__ == "__main__":
    unittest.main()
