"""Mirror domains: content tree, fonts and media."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cmsmirror.domains.base import Domain
from cmsmirror.domains.content import ContentDomain
from cmsmirror.domains.fonts import FontsDomain
from cmsmirror.domains.media import MediaDomain

if TYPE_CHECKING:
    from cmsmirror.config import Settings

DOMAIN_TYPES: dict[str, type[Domain]] = {
    ContentDomain.name: ContentDomain,
    FontsDomain.name: FontsDomain,
    MediaDomain.name: MediaDomain,
}


def build_domains(settings: Settings, names: list[str] | None = None) -> list[Domain]:
    selected = names or list(DOMAIN_TYPES)
    unknown = [name for name in selected if name not in DOMAIN_TYPES]
    if unknown:
        raise ValueError(f"Unknown domain(s): {', '.join(unknown)}")
    return [DOMAIN_TYPES[name](settings) for name in dict.fromkeys(selected)]


__all__ = [
    "Domain",
    "ContentDomain",
    "FontsDomain",
    "MediaDomain",
    "DOMAIN_TYPES",
    "build_domains",
]
