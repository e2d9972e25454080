"""Shared behaviour for mirror domains."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cmsmirror.errors import (
    ConfigurationError,
    EnumerationError,
    ItemFetchError,
    PayloadIntegrityError,
    WriteError,
)
from cmsmirror.models import CacheEntry, RemoteItem
from cmsmirror.sync.reconcile import default_key_for_path
from cmsmirror.sync.storage import write_atomic

if TYPE_CHECKING:
    from cmsmirror.config import Settings
    from cmsmirror.sync.orchestrator import SyncContext


class Domain:
    """One independent sync pipeline with its own subtree and manifest.

    Subclasses provide ``enumerate``; the remaining hooks have defaults that
    store each item at its key under ``local_root``.
    """

    name = "domain"
    subdir = "domain"
    manifest_name = "domain-cache-state.json"
    keep: tuple[str, ...] = ()

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._logger = logging.getLogger(f"cmsmirror.domains.{self.name}")

    @property
    def local_root(self) -> Path:
        return self.settings.public_dir / self.subdir

    @property
    def manifest_path(self) -> Path:
        return self.settings.state_dir / self.manifest_name

    @property
    def public_prefix(self) -> str:
        return f"/{self.subdir}"

    def origin(self, path: str) -> str:
        if not self.settings.origin_url:
            raise ConfigurationError(f"Origin URL is not configured for {self.name}")
        return f"{self.settings.origin_url}/{path.lstrip('/')}"

    async def enumerate(self, context: SyncContext) -> list[RemoteItem]:
        raise NotImplementedError

    def relative_path(self, item: RemoteItem) -> str:
        return item.key

    def artifact_path(self, item: RemoteItem) -> Path:
        return self.local_root / self.relative_path(item)

    def key_for_path(self, rel_path: str) -> str:
        return default_key_for_path(rel_path)

    def validate(self, item: RemoteItem, payload: bytes) -> None:
        if not payload:
            raise PayloadIntegrityError(f"Empty payload for {item.key}", key=item.key)

    def config_hash(self, items: list[RemoteItem]) -> str | None:
        return None

    def finalize(self, items: list[RemoteItem], entries: dict[str, CacheEntry]) -> None:
        """Write generated files (asset indexes) once the run's entries are known."""

    async def fetch_document(
        self,
        context: SyncContext,
        locator: str,
        key: str,
    ) -> tuple[bytes, Any]:
        try:
            result = await context.fetcher.fetch(locator, key=key)
        except ItemFetchError as exc:
            raise EnumerationError(
                f"Cannot fetch {self.name} index {locator}: {exc}",
                key=key,
                attempts=exc.attempts,
                cause=exc,
            ) from exc
        try:
            document = json.loads(result.content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise EnumerationError(
                f"Index {locator} is not valid JSON",
                key=key,
                attempts=result.attempts,
                cause=exc,
            ) from exc
        return result.content, document

    def write_generated(self, file_name: str, document: Any) -> None:
        path = self.local_root / file_name
        body = json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
        try:
            write_atomic(path, body)
        except OSError as exc:
            raise WriteError(f"Cannot write {path}: {exc}", key=file_name, cause=exc) from exc


def validate_json_payload(item: RemoteItem, payload: bytes) -> Any:
    try:
        return json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PayloadIntegrityError(
            f"Payload for {item.key} is not valid JSON",
            key=item.key,
            cause=exc,
        ) from exc
