"""Per-domain synchronization runs: load, enumerate, diff, fetch, write, reconcile, persist."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncIterator, Callable, Sequence

import httpx

from cmsmirror.errors import (
    ConfigurationError,
    ItemFetchError,
    PayloadIntegrityError,
    ReconciliationError,
    SyncError,
    WriteError,
)
from cmsmirror.models import (
    CLASS_CHANGED,
    CLASS_NEW,
    CLASS_UNCHANGED,
    STATUS_COMPLETED,
    STATUS_COMPLETED_WITH_SKIPS,
    STATUS_FAILED,
    STATUS_SKIPPED,
    CacheEntry,
    CacheManifest,
    DomainRunReport,
    ItemFailure,
    RemoteItem,
)
from cmsmirror.sync.fetcher import Fetcher, Sleep
from cmsmirror.sync.fingerprint import fingerprint_bytes
from cmsmirror.sync.reconcile import Reconciler, detect_key_collisions
from cmsmirror.sync.state import ManifestStore
from cmsmirror.sync.storage import write_atomic
from cmsmirror.timing import Timer

if TYPE_CHECKING:
    from cmsmirror.config import Settings
    from cmsmirror.domains.base import Domain

logger = logging.getLogger(__name__)


def _now_utc() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncContext:
    """Everything one invocation needs; built per run and discarded afterwards."""

    settings: Settings
    fetcher: Fetcher
    reconciler: Reconciler
    clock: Callable[[], str] = _now_utc


@dataclass(frozen=True)
class ItemOutcome:
    key: str
    classification: str
    entry: CacheEntry
    failure: ItemFailure | None = None


@dataclass
class _RunState:
    outcomes: dict[str, ItemOutcome] = field(default_factory=dict)
    failures: list[ItemFailure] = field(default_factory=list)
    fatal: SyncError | None = None


@asynccontextmanager
async def open_context(
    settings: Settings,
    domains: Sequence[Domain],
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], str] = _now_utc,
) -> AsyncIterator[SyncContext]:
    async with httpx.AsyncClient(transport=transport, follow_redirects=True) as client:
        fetcher = Fetcher(
            client,
            policy=settings.fetch_policy,
            concurrency=settings.concurrency,
            user_agent=settings.user_agent,
            sleep=sleep,
        )
        reconciler = Reconciler(domain.local_root for domain in domains)
        yield SyncContext(settings=settings, fetcher=fetcher, reconciler=reconciler, clock=clock)


def classify(item: RemoteItem, entry: CacheEntry | None, artifact_exists: bool) -> str:
    if entry is None:
        return CLASS_NEW
    if entry.revision != item.revision or not artifact_exists:
        return CLASS_CHANGED
    return CLASS_UNCHANGED


def _commit(domain: Domain, item: RemoteItem, payload: bytes) -> None:
    path = domain.artifact_path(item)
    try:
        write_atomic(path, payload)
    except OSError as exc:
        raise WriteError(f"Cannot write {path}: {exc}", key=item.key, cause=exc) from exc


async def _process_item(
    domain: Domain,
    context: SyncContext,
    item: RemoteItem,
    entry: CacheEntry | None,
    now: str,
    config_unchanged: bool = False,
) -> ItemOutcome:
    classification = classify(item, entry, domain.artifact_path(item).exists())
    etag: str | None = None
    last_modified: str | None = None

    if classification == CLASS_UNCHANGED and entry is not None:
        if not item.revalidate or config_unchanged:
            return ItemOutcome(item.key, CLASS_UNCHANGED, replace(entry, checked_at=now))
        try:
            result = await context.fetcher.fetch(
                item.locator,
                validators=entry.validators,
                key=item.key,
            )
        except ItemFetchError as exc:
            # Keep the previously committed entry; only this check failed.
            failure = ItemFailure(
                key=item.key,
                locator=item.locator,
                reason="revalidation_failed",
                attempts=exc.attempts,
                cause=str(exc.cause or exc),
            )
            return ItemOutcome(item.key, CLASS_UNCHANGED, entry, failure=failure)
        refreshed = replace(
            entry,
            checked_at=now,
            etag=result.etag or entry.etag,
            last_modified=result.last_modified or entry.last_modified,
        )
        if result.not_modified or fingerprint_bytes(result.content) == entry.fingerprint:
            return ItemOutcome(item.key, CLASS_UNCHANGED, refreshed)
        classification = CLASS_CHANGED
        payload = result.content
        etag, last_modified = result.etag, result.last_modified
    elif item.payload is not None:
        payload = item.payload
    else:
        result = await context.fetcher.fetch(item.locator, key=item.key)
        payload = result.content
        etag, last_modified = result.etag, result.last_modified

    domain.validate(item, payload)
    _commit(domain, item, payload)
    return ItemOutcome(
        item.key,
        classification,
        CacheEntry(
            key=item.key,
            revision=item.revision,
            fingerprint=fingerprint_bytes(payload),
            size=len(payload),
            checked_at=now,
            fetched_at=now,
            etag=etag,
            last_modified=last_modified,
        ),
    )


def _failure_from(item: RemoteItem, exc: SyncError) -> ItemFailure:
    if isinstance(exc, ItemFetchError):
        reason = "fetch_failed"
    elif isinstance(exc, PayloadIntegrityError):
        reason = "invalid_payload"
    else:
        reason = type(exc).__name__
    return ItemFailure(
        key=item.key,
        locator=item.locator,
        reason=reason,
        attempts=exc.attempts,
        cause=str(exc.cause or exc),
    )


def _unique_items(domain: Domain, items: list[RemoteItem], state: _RunState) -> list[RemoteItem]:
    unique: dict[str, RemoteItem] = {}
    for item in items:
        if item.key not in unique:
            unique[item.key] = item
            continue
        rel_path = domain.relative_path(item)
        logger.warning(
            "[%s] Remote item %s duplicates an earlier key and maps to %s; skipping it",
            domain.name,
            item.locator,
            rel_path,
        )
        state.failures.append(
            ItemFailure(
                key=item.key,
                locator=item.locator,
                reason="path_collision",
                attempts=0,
                cause=rel_path,
            )
        )
        if item.critical and state.fatal is None:
            state.fatal = WriteError(
                f"Critical item {item.key} duplicates an earlier key",
                key=item.key,
            )

    collisions = detect_key_collisions(
        {key: domain.relative_path(item) for key, item in unique.items()}
    )
    for rel_path, keys in collisions.items():
        logger.warning(
            "[%s] Remote items %s map to the same local file %s; skipping them",
            domain.name,
            ", ".join(keys),
            rel_path,
        )
        for key in keys:
            item = unique.pop(key)
            failure = ItemFailure(
                key=key,
                locator=item.locator,
                reason="path_collision",
                attempts=0,
                cause=rel_path,
            )
            state.failures.append(failure)
            if item.critical and state.fatal is None:
                state.fatal = WriteError(f"Critical item {key} collides on {rel_path}", key=key)
    return list(unique.values())


async def _fetch_phase(
    domain: Domain,
    context: SyncContext,
    manifest: CacheManifest,
    items: list[RemoteItem],
    now: str,
    state: _RunState,
    config_unchanged: bool = False,
) -> None:
    results = await asyncio.gather(
        *(
            _process_item(domain, context, item, manifest.get(item.key), now, config_unchanged)
            for item in items
        ),
        return_exceptions=True,
    )
    for item, result in zip(items, results):
        if isinstance(result, ItemOutcome):
            state.outcomes[item.key] = result
            if result.failure is not None:
                state.failures.append(result.failure)
                logger.warning(
                    "[%s] Could not revalidate %s, keeping cached copy: %s",
                    domain.name,
                    item.key,
                    result.failure.as_dict(),
                )
            continue
        if isinstance(result, WriteError):
            logger.error("[%s] Write failed: %s", domain.name, result.context())
            if state.fatal is None:
                state.fatal = result
            continue
        if isinstance(result, (ItemFetchError, PayloadIntegrityError)):
            state.failures.append(_failure_from(item, result))
            if item.critical:
                logger.error("[%s] Critical item failed: %s", domain.name, result.context())
                if state.fatal is None:
                    state.fatal = result
            else:
                logger.warning("[%s] Skipping item: %s", domain.name, result.context())
            continue
        if isinstance(result, BaseException):
            raise result


def _finish(report: DomainRunReport, timer: Timer) -> DomainRunReport:
    elapsed = timer.end()
    report.elapsed_ms = int(elapsed.ms)
    log = logger.error if report.status == STATUS_FAILED else logger.info
    log(
        "[%s] %s in %s: fetched=%d unchanged=%d skipped=%d removed=%d",
        report.domain,
        report.status,
        elapsed.formatted,
        len(report.fetched),
        len(report.unchanged),
        len(report.skipped),
        len(report.removed),
    )
    return report


async def run_domain(domain: Domain, context: SyncContext) -> DomainRunReport:
    timer = Timer().start()
    report = DomainRunReport(domain=domain.name, status=STATUS_COMPLETED)

    if not context.settings.origin_configured:
        logger.warning("[%s] Origin URL not set, skipping", domain.name)
        report.status = STATUS_SKIPPED
        report.error = ConfigurationError("Origin URL is not configured")
        return _finish(report, timer)

    store = ManifestStore(domain.manifest_path)
    manifest = store.load()
    now = context.clock()

    try:
        enumerated = await domain.enumerate(context)
    except SyncError as exc:
        report.error = exc
        if context.settings.tolerant:
            logger.warning("[%s] Enumeration failed, keeping local mirror: %s", domain.name, exc)
            report.status = STATUS_COMPLETED_WITH_SKIPS
        else:
            logger.error("[%s] Enumeration failed: %s", domain.name, exc)
            report.status = STATUS_FAILED
        return _finish(report, timer)

    state = _RunState()
    items = _unique_items(domain, enumerated, state)
    config_hash = domain.config_hash(items)
    config_unchanged = config_hash is not None and config_hash == manifest.config_hash
    if config_unchanged:
        logger.info(
            "[%s] Configuration unchanged since %s, reusing cached files",
            domain.name,
            manifest.last_sync,
        )

    await _fetch_phase(domain, context, manifest, items, now, state, config_unchanged)

    for key in sorted(state.outcomes):
        outcome = state.outcomes[key]
        if outcome.classification == CLASS_UNCHANGED:
            report.unchanged.append(key)
        else:
            report.fetched.append(key)
    report.failures = state.failures
    report.skipped = sorted({failure.key for failure in state.failures})

    if state.fatal is not None:
        report.status = STATUS_FAILED
        report.error = state.fatal
        return _finish(report, timer)

    expected = {item.key for item in enumerated}
    try:
        report.removed = context.reconciler.reconcile(
            expected,
            domain.local_root,
            key_for_path=domain.key_for_path,
            keep=domain.keep,
        )
    except ReconciliationError as exc:
        logger.warning("[%s] Reconciliation skipped: %s", domain.name, exc)

    entries = {key: state.outcomes[key].entry for key in sorted(state.outcomes)}
    try:
        domain.finalize(items, entries)
    except WriteError as exc:
        logger.error("[%s] %s", domain.name, exc)
        report.status = STATUS_FAILED
        report.error = exc
        return _finish(report, timer)

    updated = CacheManifest(last_sync=now, config_hash=config_hash, entries=entries)
    report.manifest_saved = store.save(updated)
    if report.failures:
        report.status = STATUS_COMPLETED_WITH_SKIPS
    return _finish(report, timer)


async def run_domains(
    domains: Sequence[Domain],
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], str] = _now_utc,
) -> list[DomainRunReport]:
    async with open_context(
        settings, domains, transport=transport, sleep=sleep, clock=clock
    ) as context:
        reports = await asyncio.gather(*(run_domain(domain, context) for domain in domains))
    return list(reports)
