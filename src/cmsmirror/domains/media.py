"""Media domain: binary assets named after their remote path."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator
from urllib.parse import quote

from cmsmirror.domains.base import Domain
from cmsmirror.domains.content import node_validator
from cmsmirror.models import CacheEntry, RemoteItem
from cmsmirror.validation import sanitize_path, validate_url

if TYPE_CHECKING:
    from cmsmirror.sync.orchestrator import SyncContext

MEDIA_INDEX_FILE = "media.json"
MEDIA_LIST_FIELDS = ("files", "media", "assets")


def iter_media_records(document: Any) -> Iterator[dict[str, Any]]:
    records: Any = document
    if isinstance(document, dict):
        records = next(
            (document[name] for name in MEDIA_LIST_FIELDS if isinstance(document.get(name), list)),
            [],
        )
    if not isinstance(records, list):
        return
    for record in records:
        if isinstance(record, str):
            yield {"path": record}
        elif isinstance(record, dict):
            yield record


class MediaDomain(Domain):
    name = "media"
    subdir = "media"
    manifest_name = "media-cache-state.json"
    keep = (MEDIA_INDEX_FILE,)

    async def enumerate(self, context: SyncContext) -> list[RemoteItem]:
        _, document = await self.fetch_document(context, self.origin("media.json"), key="media")
        items: list[RemoteItem] = []
        for record in iter_media_records(document):
            raw_path = record.get("path") or record.get("filename")
            try:
                key = sanitize_path(str(raw_path or "").strip().lstrip("/"), field_name="Media path")
                url = record.get("url")
                locator = (
                    validate_url(str(url), field_name=f"{key} url")
                    if url
                    else self.origin(f"media/{quote(key)}")
                )
            except ValueError as exc:
                self._logger.warning("Skipping media record %r: %s", raw_path, exc)
                continue
            if key in self.keep:
                self._logger.warning("Skipping %s: reserved file name", key)
                continue
            validator = node_validator(record)
            items.append(
                RemoteItem(
                    key=key,
                    locator=locator,
                    descriptor=record,
                    validator=validator,
                    revalidate=validator is None,
                )
            )
        return items

    def finalize(self, items: list[RemoteItem], entries: dict[str, CacheEntry]) -> None:
        files = {
            item.key: {
                "src": f"{self.public_prefix}/{item.key}",
                "size": entries[item.key].size,
            }
            for item in items
            if item.key in entries
        }
        self.write_generated(MEDIA_INDEX_FILE, {"files": dict(sorted(files.items()))})
