from __future__ import annotations

import io
import json
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock

from cmsmirror.cli import build_parser, main
from cmsmirror.models import STATUS_FAILED, CacheEntry, CacheManifest, DomainRunReport
from cmsmirror.sync.state import ManifestStore


class CliTests(unittest.TestCase):
    def test_parser_defaults(self) -> None:
        args = build_parser().parse_args([])
        self.assertEqual(args.command, "sync")
        self.assertEqual(args.log_level, "INFO")

        args = build_parser().parse_args(["sync", "--domain", "fonts", "--domain", "media", "--strict"])
        self.assertEqual(args.domain, ["fonts", "media"])
        self.assertFalse(args.degrade)
        self.assertEqual(args.timeout_ms, 30000)
        self.assertEqual(args.max_retries, 3)
        self.assertEqual(args.retry_delay_ms, 1000)
        self.assertEqual(args.concurrency, 4)

    def test_degrade_and_strict_are_exclusive(self) -> None:
        with redirect_stdout(io.StringIO()), mock.patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit):
                build_parser().parse_args(["sync", "--degrade", "--strict"])

    def test_status_reports_manifests(self) -> None:
        with TemporaryDirectory() as tmpdir:
            project = Path(tmpdir)
            ManifestStore(project / ".astro" / "font-cache-state.json").save(
                CacheManifest(
                    last_sync="2026-01-01T00:00:00+00:00",
                    entries={
                        "inter.woff2": CacheEntry(
                            key="inter.woff2",
                            revision="r",
                            fingerprint="f",
                            size=42,
                            checked_at="2026-01-01T00:00:00+00:00",
                            fetched_at="2026-01-01T00:00:00+00:00",
                        )
                    },
                )
            )
            out = io.StringIO()
            with mock.patch.dict("os.environ", {}, clear=True), redirect_stdout(out):
                code = main(["--project", str(project), "--log-level", "ERROR", "status"])

            self.assertEqual(code, 0)
            payload = json.loads(out.getvalue())
            self.assertFalse(payload["origin_configured"])
            self.assertEqual(payload["domains"]["fonts"]["entries"], 1)
            self.assertEqual(payload["domains"]["fonts"]["bytes"], 42)
            self.assertEqual(payload["domains"]["content"]["entries"], 0)

    def test_sync_without_origin_skips_every_domain(self) -> None:
        with TemporaryDirectory() as tmpdir:
            out = io.StringIO()
            with mock.patch.dict("os.environ", {}, clear=True), redirect_stdout(out):
                code = main(["--project", tmpdir, "--log-level", "ERROR", "sync"])

            self.assertEqual(code, 0)
            statuses = {item["domain"]: item["status"] for item in json.loads(out.getvalue())["domains"]}
            self.assertEqual(statuses, {"content": "skipped", "fonts": "skipped", "media": "skipped"})

    def test_invalid_origin_exits_with_configuration_error(self) -> None:
        with TemporaryDirectory() as tmpdir:
            with mock.patch.dict("os.environ", {}, clear=True):
                with self.assertLogs("cmsmirror.cli", level="ERROR"):
                    code = main(["--project", tmpdir, "--origin-url", "not-a-url", "status"])
            self.assertEqual(code, 2)

    def test_failed_domain_exit_code_depends_on_degrade(self) -> None:
        with TemporaryDirectory() as tmpdir:
            async def _failing(domains, settings):
                return [DomainRunReport(domain="content", status=STATUS_FAILED)]

            for flag, expected in (("--strict", 1), ("--degrade", 0)):
                with mock.patch("cmsmirror.cli.run_domains", _failing), redirect_stdout(io.StringIO()):
                    with mock.patch.dict("os.environ", {"KIRBY_URL": "https://cms.example"}, clear=True):
                        code = main(["--project", tmpdir, "--log-level", "ERROR", "sync", flag])
                self.assertEqual(code, expected, flag)


if __name__ == "__main__":
    unittest.main()
