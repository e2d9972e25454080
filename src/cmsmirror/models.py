"""Shared typed models used across fetching, state and reconciliation layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MANIFEST_SCHEMA_VERSION = 2

STATUS_COMPLETED = "completed"
STATUS_COMPLETED_WITH_SKIPS = "completed_with_skips"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

CLASS_NEW = "new"
CLASS_CHANGED = "changed"
CLASS_UNCHANGED = "unchanged"


@dataclass(frozen=True)
class RemoteItem:
    key: str
    locator: str
    descriptor: dict[str, Any] = field(default_factory=dict)
    validator: str | None = None
    critical: bool = False
    revalidate: bool = False
    payload: bytes | None = field(default=None, repr=False)

    @property
    def revision(self) -> str:
        """Origin validator when supplied, otherwise a fingerprint of what the origin told us."""
        if self.validator:
            return self.validator
        from cmsmirror.sync.fingerprint import fingerprint, fingerprint_bytes

        if self.payload is not None:
            return fingerprint_bytes(self.payload)
        return fingerprint(self.descriptor)


@dataclass(frozen=True)
class HttpValidators:
    etag: str | None = None
    last_modified: str | None = None

    def is_empty(self) -> bool:
        return not self.etag and not self.last_modified


@dataclass(frozen=True)
class CacheEntry:
    key: str
    revision: str
    fingerprint: str
    size: int
    checked_at: str
    fetched_at: str
    etag: str | None = None
    last_modified: str | None = None

    @property
    def validators(self) -> HttpValidators:
        return HttpValidators(etag=self.etag, last_modified=self.last_modified)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "revision": self.revision,
            "fingerprint": self.fingerprint,
            "size": self.size,
            "checkedAt": self.checked_at,
            "fetchedAt": self.fetched_at,
        }
        if self.etag:
            payload["etag"] = self.etag
        if self.last_modified:
            payload["lastModified"] = self.last_modified
        return payload

    @classmethod
    def from_payload(cls, key: str, payload: dict[str, Any]) -> "CacheEntry":
        etag = payload.get("etag")
        last_modified = payload.get("lastModified")
        return cls(
            key=key,
            revision=str(payload["revision"]),
            fingerprint=str(payload["fingerprint"]),
            size=int(payload.get("size", 0)),
            checked_at=str(payload["checkedAt"]),
            fetched_at=str(payload["fetchedAt"]),
            etag=str(etag) if etag else None,
            last_modified=str(last_modified) if last_modified else None,
        )


@dataclass
class CacheManifest:
    version: int = MANIFEST_SCHEMA_VERSION
    last_sync: str | None = None
    config_hash: str | None = None
    entries: dict[str, CacheEntry] = field(default_factory=dict)

    def get(self, key: str) -> CacheEntry | None:
        return self.entries.get(key)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "version": self.version,
            "lastSync": self.last_sync,
            "entries": {
                key: self.entries[key].to_payload() for key in sorted(self.entries)
            },
        }
        if self.config_hash:
            payload["configHash"] = self.config_hash
        return payload


@dataclass(frozen=True)
class ItemFailure:
    key: str
    locator: str
    reason: str
    attempts: int
    cause: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "locator": self.locator,
            "reason": self.reason,
            "attempts": self.attempts,
            "cause": self.cause,
        }


@dataclass
class DomainRunReport:
    domain: str
    status: str
    fetched: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    manifest_saved: bool = False
    elapsed_ms: int = 0
    error: Exception | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.status != STATUS_FAILED

    def raise_for_status(self) -> None:
        if self.status == STATUS_FAILED and self.error is not None:
            raise self.error

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "domain": self.domain,
            "status": self.status,
            "fetched": sorted(self.fetched),
            "unchanged": sorted(self.unchanged),
            "skipped": sorted(self.skipped),
            "removed": sorted(self.removed),
            "failures": [failure.as_dict() for failure in self.failures],
            "manifest_saved": self.manifest_saved,
            "elapsed_ms": self.elapsed_ms,
        }
        if self.error is not None:
            payload["error"] = str(self.error)
        return payload
