"""Font domain: font binaries listed in the site's global configuration."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urlsplit

from cmsmirror.domains.base import Domain
from cmsmirror.errors import PayloadIntegrityError
from cmsmirror.models import CacheEntry, RemoteItem
from cmsmirror.sync.fingerprint import config_fingerprint
from cmsmirror.validation import validate_file_extension, validate_url

if TYPE_CHECKING:
    from cmsmirror.sync.orchestrator import SyncContext

FONT_INDEX_FILE = "fonts.json"
ALLOWED_FONT_EXTENSIONS = (".woff", ".woff2", ".ttf", ".otf")
# global.json field -> format recorded in fonts.json
FONT_URL_FIELDS = (("url1", "woff"), ("url2", "woff2"))


def font_file_name(url: str) -> str:
    return PurePosixPath(unquote(urlsplit(url).path)).name


class FontsDomain(Domain):
    name = "fonts"
    subdir = "fonts"
    manifest_name = "font-cache-state.json"
    keep = (FONT_INDEX_FILE,)

    async def enumerate(self, context: SyncContext) -> list[RemoteItem]:
        _, document = await self.fetch_document(context, self.origin("global.json"), key="global")
        fonts = document.get("font") if isinstance(document, dict) else None
        if not fonts:
            self._logger.warning("No fonts found in configuration")
            return []

        items: list[RemoteItem] = []
        for position, font in enumerate(fonts):
            if not isinstance(font, dict):
                continue
            name = str(font.get("name") or f"font-{position}")
            for field_name, font_format in FONT_URL_FIELDS:
                url = font.get(field_name)
                if not url:
                    continue
                try:
                    locator = validate_url(str(url), field_name=f"{name} {field_name}")
                    file_name = font_file_name(locator)
                    validate_file_extension(file_name, ALLOWED_FONT_EXTENSIONS, field_name=name)
                except ValueError as exc:
                    self._logger.warning("Skipping %s for %s: %s", font_format, name, exc)
                    continue
                if file_name in self.keep:
                    self._logger.warning("Skipping %s: reserved file name %s", name, file_name)
                    continue
                items.append(
                    RemoteItem(
                        key=file_name,
                        locator=locator,
                        descriptor={
                            "name": name,
                            "format": font_format,
                            "url": locator,
                        },
                        revalidate=True,
                    )
                )
        return items

    def validate(self, item: RemoteItem, payload: bytes) -> None:
        super().validate(item, payload)
        if payload.lstrip()[:1] in (b"<", b"{"):
            raise PayloadIntegrityError(
                f"Payload for {item.key} looks like a document, not a font",
                key=item.key,
            )

    def config_hash(self, items: list[RemoteItem]) -> str | None:
        return config_fingerprint(item.descriptor for item in items)

    def finalize(self, items: list[RemoteItem], entries: dict[str, CacheEntry]) -> None:
        fonts: dict[str, dict[str, Any]] = {}
        for item in items:
            name = str(item.descriptor.get("name"))
            record = fonts.setdefault(name, {"name": name, "woff": None, "woff2": None})
            if item.key in entries:
                record[str(item.descriptor.get("format"))] = f"{self.public_prefix}/{item.key}"
        available = [record for record in fonts.values() if record["woff"] or record["woff2"]]
        for name in fonts.keys() - {record["name"] for record in available}:
            self._logger.warning("Skipping %s - no valid font files downloaded", name)
        self.write_generated(FONT_INDEX_FILE, {"fonts": available})
