"""Error taxonomy for mirror runs.

Every error carries the item key (when one applies), the number of attempts
made and the last underlying cause so that logs and reports stay structured.
"""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        attempts: int = 0,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.key = key
        self.attempts = attempts
        self.cause = cause

    def context(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "key": self.key,
            "attempts": self.attempts,
            "cause": repr(self.cause) if self.cause is not None else None,
        }


class ConfigurationError(SyncError):
    """Missing or malformed configuration, detected before any network call."""


class EnumerationError(SyncError):
    """The authoritative remote item list could not be obtained."""


class ItemFetchError(SyncError):
    def __init__(
        self,
        message: str,
        *,
        locator: str,
        key: str | None = None,
        attempts: int = 0,
        cause: BaseException | None = None,
        status_code: int | None = None,
        retriable: bool = True,
    ) -> None:
        super().__init__(message, key=key, attempts=attempts, cause=cause)
        self.locator = locator
        self.status_code = status_code
        self.retriable = retriable

    def context(self) -> dict[str, Any]:
        payload = super().context()
        payload["locator"] = self.locator
        payload["status_code"] = self.status_code
        payload["retriable"] = self.retriable
        return payload


class PayloadIntegrityError(SyncError):
    """A fetched payload failed validation and must not replace a good artifact."""


class WriteError(SyncError):
    """An artifact could not be committed to local storage."""


class CacheStateError(SyncError):
    """The manifest could not be read; recovered as empty state."""


class ReconciliationError(SyncError):
    """Local storage could not be listed or is outside the allowed roots."""
