"""CLI entry point for mirroring CMS content ahead of a site build."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Sequence

from cmsmirror.config import Settings, build_settings
from cmsmirror.domains import DOMAIN_TYPES, build_domains
from cmsmirror.errors import ConfigurationError
from cmsmirror.models import STATUS_FAILED
from cmsmirror.sync.orchestrator import run_domains
from cmsmirror.sync.state import ManifestStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cmsmirror",
        description="Mirror CMS content, fonts and media into the local build tree.",
    )
    parser.add_argument(
        "--project",
        type=Path,
        default=Path("."),
        help="Path to the site project root.",
    )
    parser.add_argument(
        "--origin-url",
        default=None,
        help="CMS origin base URL. Defaults to $CMSMIRROR_ORIGIN_URL or $KIRBY_URL.",
    )
    parser.add_argument(
        "--public-dir",
        type=Path,
        default=None,
        help="Mirror output directory. Defaults to <project>/public.",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=None,
        help="Directory holding manifests. Defaults to <project>/.astro.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log verbosity level.",
    )

    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help="Synchronize domains and exit.")
    sync_parser.add_argument(
        "--domain",
        action="append",
        choices=sorted(DOMAIN_TYPES),
        default=None,
        help="Domain to synchronize. Repeatable; defaults to all domains.",
    )
    sync_parser.add_argument("--timeout-ms", type=int, default=30000, help="Per-attempt timeout.")
    sync_parser.add_argument("--max-retries", type=int, default=3, help="Retries per request.")
    sync_parser.add_argument(
        "--retry-delay-ms",
        type=int,
        default=1000,
        help="Base delay for exponential backoff.",
    )
    sync_parser.add_argument("--concurrency", type=int, default=4, help="Concurrent requests.")
    sync_parser.add_argument(
        "--tolerant",
        action="store_true",
        help="Keep the current mirror when a remote index cannot be listed.",
    )
    policy = sync_parser.add_mutually_exclusive_group()
    policy.add_argument(
        "--degrade",
        dest="degrade",
        action="store_const",
        const=True,
        default=None,
        help="Exit 0 even when a domain fails. Default on hosted CI ($NETLIFY).",
    )
    policy.add_argument(
        "--strict",
        dest="degrade",
        action="store_const",
        const=False,
        help="Exit 1 when any domain fails.",
    )

    subparsers.add_parser("status", help="Print manifest summaries and exit.")
    parser.set_defaults(command="sync")
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _status_payload(settings: Settings) -> dict[str, Any]:
    domains: dict[str, Any] = {}
    for domain in build_domains(settings):
        manifest = ManifestStore(domain.manifest_path).load()
        domains[domain.name] = {
            "manifest": domain.manifest_path.as_posix(),
            "last_sync": manifest.last_sync,
            "config_hash": manifest.config_hash,
            "entries": len(manifest.entries),
            "bytes": sum(entry.size for entry in manifest.entries.values()),
        }
    return {
        "origin_configured": settings.origin_configured,
        "public_dir": settings.public_dir.as_posix(),
        "domains": domains,
    }


def _run_sync(settings: Settings, names: list[str] | None) -> tuple[int, dict[str, Any]]:
    domains = build_domains(settings, names)
    reports = asyncio.run(run_domains(domains, settings))
    payload = {"domains": [report.as_dict() for report in reports]}
    failed = [report for report in reports if report.status == STATUS_FAILED]
    if not failed:
        return 0, payload
    log = logging.getLogger(__name__)
    if settings.degrade:
        for report in failed:
            log.warning("Continuing build despite %s failure: %s", report.domain, report.error)
        return 0, payload
    return 1, payload


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    try:
        settings = build_settings(
            project_root=args.project,
            origin_url=args.origin_url,
            public_dir=args.public_dir,
            state_dir=args.state_dir,
            timeout_ms=int(getattr(args, "timeout_ms", 30000)),
            max_retries=int(getattr(args, "max_retries", 3)),
            base_retry_delay_ms=int(getattr(args, "retry_delay_ms", 1000)),
            concurrency=int(getattr(args, "concurrency", 4)),
            tolerant=bool(getattr(args, "tolerant", False)),
            degrade=getattr(args, "degrade", None),
            log_level=args.log_level,
        )
    except ConfigurationError as exc:
        logging.getLogger(__name__).error("%s", exc)
        return 2

    if args.command == "status":
        print(json.dumps(_status_payload(settings), sort_keys=True))
        return 0

    code, payload = _run_sync(settings, getattr(args, "domain", None))
    print(json.dumps(payload, sort_keys=True))
    return code


if __name__ == "__main__":
    raise SystemExit(main())
