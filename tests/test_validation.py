from __future__ import annotations

import unittest

from cmsmirror.validation import sanitize_path, validate_file_extension, validate_url


class ValidationTests(unittest.TestCase):
    def test_validate_url(self) -> None:
        self.assertEqual(validate_url(" https://cms.example/api "), "https://cms.example/api")
        self.assertEqual(validate_url("http://localhost:8080"), "http://localhost:8080")
        for bad in ("", None, "cms.example", "javascript:alert(1)", "https://"):
            with self.assertRaises(ValueError):
                validate_url(bad)

    def test_sanitize_path(self) -> None:
        self.assertEqual(sanitize_path("blog/./post"), "blog/post")
        self.assertEqual(sanitize_path("blog\\post"), "blog/post")
        self.assertEqual(sanitize_path("a/../b"), "b")
        for bad in ("", ".", "/etc/passwd", "../secret", "a/../../b"):
            with self.assertRaises(ValueError):
                sanitize_path(bad)

    def test_validate_file_extension(self) -> None:
        self.assertTrue(validate_file_extension("Inter.WOFF2", [".woff2"]))
        with self.assertRaises(ValueError):
            validate_file_extension("script.js", [".woff", ".woff2"])
        with self.assertRaises(ValueError):
            validate_file_extension("font.woff", [])


if __name__ == "__main__":
    unittest.main()
