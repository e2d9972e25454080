"""Configuration handling for mirror runs."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from cmsmirror.errors import ConfigurationError
from cmsmirror.sync.fetcher import DEFAULT_CONCURRENCY, DEFAULT_USER_AGENT, FetchPolicy
from cmsmirror.validation import validate_url

ORIGIN_ENV_VARS = ("CMSMIRROR_ORIGIN_URL", "KIRBY_URL")
HOSTED_CI_ENV_VARS = ("NETLIFY",)
TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    project_root: Path
    origin_url: str | None
    public_dir: Path
    state_dir: Path
    timeout_ms: int
    max_retries: int
    base_retry_delay_ms: int
    concurrency: int
    tolerant: bool
    degrade: bool
    user_agent: str
    log_level: str

    @property
    def fetch_policy(self) -> FetchPolicy:
        return FetchPolicy(
            timeout_ms=self.timeout_ms,
            max_retries=self.max_retries,
            base_retry_delay_ms=self.base_retry_delay_ms,
        )

    @property
    def origin_configured(self) -> bool:
        return bool(self.origin_url)


def resolve_project_root(project_root: Path) -> Path:
    root = project_root.expanduser().resolve()
    if not root.exists():
        raise ConfigurationError(f"Project path does not exist: {root}")
    if not root.is_dir():
        raise ConfigurationError(f"Project path is not a directory: {root}")
    return root


def resolve_origin_url(origin_url: str | None, environ: Mapping[str, str]) -> str | None:
    candidate = origin_url
    if not candidate:
        for name in ORIGIN_ENV_VARS:
            value = environ.get(name, "").strip()
            if value:
                candidate = value
                break
    if not candidate:
        return None
    try:
        return validate_url(candidate, field_name="Origin URL").rstrip("/")
    except ValueError as exc:
        raise ConfigurationError(str(exc), cause=exc) from exc


def _resolve_dir(project_root: Path, value: Path | None, default: str) -> Path:
    if value is None:
        return project_root / default
    expanded = value.expanduser()
    if not expanded.is_absolute():
        expanded = project_root / expanded
    return expanded.resolve()


def _hosted_ci(environ: Mapping[str, str]) -> bool:
    return any(environ.get(name, "").strip().lower() in TRUTHY for name in HOSTED_CI_ENV_VARS)


def build_settings(
    project_root: Path,
    origin_url: str | None = None,
    public_dir: Path | None = None,
    state_dir: Path | None = None,
    timeout_ms: int = 30000,
    max_retries: int = 3,
    base_retry_delay_ms: int = 1000,
    concurrency: int = DEFAULT_CONCURRENCY,
    tolerant: bool = False,
    degrade: bool | None = None,
    user_agent: str = DEFAULT_USER_AGENT,
    log_level: str = "INFO",
    environ: Mapping[str, str] | None = None,
) -> Settings:
    env = os.environ if environ is None else environ
    root = resolve_project_root(project_root)

    errors: list[str] = []
    if timeout_ms <= 0:
        errors.append("timeout_ms must be > 0")
    if max_retries < 0:
        errors.append("max_retries must be >= 0")
    if base_retry_delay_ms < 0:
        errors.append("base_retry_delay_ms must be >= 0")
    if concurrency < 1:
        errors.append("concurrency must be >= 1")
    if errors:
        raise ConfigurationError("Invalid configuration: " + "; ".join(errors))

    return Settings(
        project_root=root,
        origin_url=resolve_origin_url(origin_url, env),
        public_dir=_resolve_dir(root, public_dir, "public"),
        state_dir=_resolve_dir(root, state_dir, ".astro"),
        timeout_ms=timeout_ms,
        max_retries=max_retries,
        base_retry_delay_ms=base_retry_delay_ms,
        concurrency=concurrency,
        tolerant=tolerant,
        degrade=_hosted_ci(env) if degrade is None else degrade,
        user_agent=user_agent,
        log_level=log_level,
    )
