"""Bounded-concurrency HTTP retrieval with timeouts, retries and conditional requests."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import httpx

from cmsmirror import __version__
from cmsmirror.errors import ItemFetchError
from cmsmirror.models import HttpValidators

DEFAULT_USER_AGENT = f"cmsmirror/{__version__}"
DEFAULT_CONCURRENCY = 4

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class FetchPolicy:
    timeout_ms: int = 30000
    max_retries: int = 3
    base_retry_delay_ms: int = 1000

    def delay_seconds(self, retry_number: int) -> float:
        """Backoff before retry ``retry_number`` (1-based)."""
        return self.base_retry_delay_ms * (2 ** (retry_number - 1)) / 1000.0


@dataclass(frozen=True)
class FetchResult:
    locator: str
    status_code: int
    content: bytes = field(repr=False)
    attempts: int
    not_modified: bool = False
    etag: str | None = None
    last_modified: str | None = None

    @property
    def validators(self) -> HttpValidators:
        return HttpValidators(etag=self.etag, last_modified=self.last_modified)


@dataclass
class FetchStats:
    requests: int = 0
    bytes_transferred: int = 0
    not_modified: int = 0
    retries: int = 0


class _RetriableStatus(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def is_retriable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class Fetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: FetchPolicy | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        user_agent: str = DEFAULT_USER_AGENT,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.policy = policy or FetchPolicy()
        self.user_agent = user_agent
        self.stats = FetchStats()
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._sleep = sleep
        self._logger = logging.getLogger(__name__)

    def _headers(self, validators: HttpValidators | None) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if validators is not None:
            if validators.etag:
                headers["If-None-Match"] = validators.etag
            if validators.last_modified:
                headers["If-Modified-Since"] = validators.last_modified
        return headers

    async def _attempt(
        self,
        locator: str,
        headers: dict[str, str],
        timeout_seconds: float,
    ) -> httpx.Response:
        async with self._semaphore:
            self.stats.requests += 1
            async with asyncio.timeout(timeout_seconds):
                return await self.client.get(locator, headers=headers)

    async def fetch(
        self,
        locator: str,
        *,
        validators: HttpValidators | None = None,
        policy: FetchPolicy | None = None,
        key: str | None = None,
    ) -> FetchResult:
        active = policy or self.policy
        headers = self._headers(validators)
        conditional = validators is not None and not validators.is_empty()
        timeout_seconds = max(0.001, active.timeout_ms / 1000.0)
        last_error: BaseException | None = None
        last_status: int | None = None
        attempts = 0

        for attempt in range(active.max_retries + 1):
            if attempt > 0:
                self.stats.retries += 1
                await self._sleep(active.delay_seconds(attempt))
            attempts += 1
            try:
                response = await self._attempt(locator, headers, timeout_seconds)
                if response.status_code == 304 and conditional:
                    self.stats.not_modified += 1
                    return FetchResult(
                        locator=locator,
                        status_code=304,
                        content=b"",
                        attempts=attempts,
                        not_modified=True,
                        etag=response.headers.get("ETag") or (validators.etag if validators else None),
                        last_modified=response.headers.get("Last-Modified")
                        or (validators.last_modified if validators else None),
                    )
                if is_retriable_status(response.status_code):
                    raise _RetriableStatus(response.status_code)
                if response.status_code >= 400 or response.status_code == 304:
                    raise ItemFetchError(
                        f"HTTP {response.status_code} for {locator}",
                        locator=locator,
                        key=key,
                        attempts=attempts,
                        status_code=response.status_code,
                        retriable=False,
                    )
                content = response.content
                self.stats.bytes_transferred += len(content)
                return FetchResult(
                    locator=locator,
                    status_code=response.status_code,
                    content=content,
                    attempts=attempts,
                    etag=response.headers.get("ETag"),
                    last_modified=response.headers.get("Last-Modified"),
                )
            except _RetriableStatus as exc:
                last_error = exc
                last_status = exc.status_code
            except httpx.UnsupportedProtocol as exc:
                raise ItemFetchError(
                    f"Unsupported locator {locator}",
                    locator=locator,
                    key=key,
                    attempts=attempts,
                    cause=exc,
                    retriable=False,
                ) from exc
            except (TimeoutError, httpx.TimeoutException) as exc:
                last_error = exc
                last_status = None
            except httpx.TransportError as exc:
                last_error = exc
                last_status = None
            except httpx.RequestError as exc:
                # Redirect loops and undecodable bodies do not improve on retry.
                raise ItemFetchError(
                    f"Request for {locator} failed: {exc}",
                    locator=locator,
                    key=key,
                    attempts=attempts,
                    cause=exc,
                    retriable=False,
                ) from exc
            self._logger.debug(
                "Attempt %d/%d for %s failed: %s",
                attempts,
                active.max_retries + 1,
                locator,
                last_error,
            )

        self._logger.warning(
            "Giving up on %s after %d attempt(s): %s",
            locator,
            attempts,
            last_error,
        )
        raise ItemFetchError(
            f"Retries exhausted for {locator}: {last_error}",
            locator=locator,
            key=key,
            attempts=attempts,
            cause=last_error,
            status_code=last_status,
            retriable=True,
        )

