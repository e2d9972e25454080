"""Content tree domain: the site index plus one JSON document per node."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator
from urllib.parse import quote

from cmsmirror.domains.base import Domain, validate_json_payload
from cmsmirror.models import RemoteItem
from cmsmirror.sync.reconcile import strip_suffix_key
from cmsmirror.validation import sanitize_path

if TYPE_CHECKING:
    from cmsmirror.sync.orchestrator import SyncContext

INDEX_KEY = "index"
GLOBAL_KEY = "global"
NODE_LIST_FIELDS = ("pages", "nodes", "children")
VALIDATOR_FIELDS = ("modified", "hash", "etag", "version")

_json_key = strip_suffix_key(".json")


def iter_index_nodes(document: Any) -> Iterator[dict[str, Any]]:
    if isinstance(document, list):
        nodes = document
    elif isinstance(document, dict):
        nodes = []
        for name in NODE_LIST_FIELDS:
            value = document.get(name)
            if isinstance(value, list):
                nodes = value
                break
    else:
        nodes = []
    for node in nodes:
        if isinstance(node, str):
            yield {"uri": node}
        elif isinstance(node, dict):
            yield node


def node_validator(node: dict[str, Any]) -> str | None:
    for name in VALIDATOR_FIELDS:
        value = node.get(name)
        if value not in (None, ""):
            return str(value)
    return None


class ContentDomain(Domain):
    name = "content"
    subdir = "content"
    manifest_name = "kirby-sync-state.json"

    async def enumerate(self, context: SyncContext) -> list[RemoteItem]:
        index_locator = self.origin("index.json")
        payload, document = await self.fetch_document(context, index_locator, key=INDEX_KEY)
        items = [
            RemoteItem(key=INDEX_KEY, locator=index_locator, payload=payload, critical=True),
            RemoteItem(
                key=GLOBAL_KEY,
                locator=self.origin("global.json"),
                critical=True,
                revalidate=True,
            ),
        ]
        for node in iter_index_nodes(document):
            raw_uri = node.get("uri") or node.get("id")
            try:
                key = sanitize_path(str(raw_uri or "").strip().lstrip("/"), field_name="Node URI")
            except ValueError as exc:
                self._logger.warning("Skipping index node %r: %s", raw_uri, exc)
                continue
            validator = node_validator(node)
            items.append(
                RemoteItem(
                    key=key,
                    locator=self.origin(f"{quote(key)}.json"),
                    descriptor=node,
                    validator=validator,
                    revalidate=validator is None,
                )
            )
        self._logger.info("Index lists %d node(s)", len(items) - 2)
        return items

    def relative_path(self, item: RemoteItem) -> str:
        return f"{item.key}.json"

    def key_for_path(self, rel_path: str) -> str:
        return _json_key(rel_path)

    def validate(self, item: RemoteItem, payload: bytes) -> None:
        super().validate(item, payload)
        validate_json_payload(item, payload)
