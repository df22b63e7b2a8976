# src/api/engine.py — v1
"""Public API — the ContextEngine service.

Usage:
    async with ContextEngine(settings) as engine:
        await engine.scan_once()
        result = await engine.load_context("specs/api.md", level=2, consumer_id="planner")
        price_rows = await engine.query_array("market/competitors.md", "competitors",
                                              {"price": {"<": 10}})

The engine is constructed explicitly and owns every component: registry,
cache, detector, worker pool, loader and budget allocator. Nothing is a
process-wide singleton; two engines over different state roots are
independent.

Write side: change event -> per-document lock -> read (with retry) ->
invalidate cache + mark outdated -> convert on the executor -> write derived
file -> mark synced -> activate cache.

Read side: registry lookup -> bounded wait for an in-flight conversion ->
last good snapshot (flagged stale if it no longer matches the source), else a
summary read from the source itself (always stale) -> cached or freshly built
view -> atomic budget charge. Stale snapshots never touch the cache.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from ctxsync.budget.allocator import BudgetAllocator
from ctxsync.cache.cache_factory import create_tiered_cache
from ctxsync.cache.models import CacheStats
from ctxsync.cache.tiered_cache import TieredCache
from ctxsync.config.settings import Settings, load_settings
from ctxsync.conversion.converter import Converter
from ctxsync.core.alerts import AlertChannel, LoggingAlertChannel
from ctxsync.core.errors import CtxSyncError, DocumentNotFound, SourceUnreadable
from ctxsync.core.models import (
    BudgetTarget,
    ChangeEvent,
    DerivedRepresentation,
    LevelTarget,
    LoadRequest,
    LoadResult,
    RegistryEntry,
    SyncReport,
    SyncStatus,
)
from ctxsync.detection.detector import ChangeDetector
from ctxsync.detection.fingerprint import category_for
from ctxsync.detection.retry import RetryConfig, read_source
from ctxsync.detection.scanner import SourceScanner
from ctxsync.loading.progressive_loader import ProgressiveLoader, Snapshot
from ctxsync.loading.section_mapping import SectionResolver, StaticSectionMapping
from ctxsync.logging.context import log_context
from ctxsync.pipeline.worker_pool import KeyedLocks, WorkerPool
from ctxsync.query.engine import (
    PathNotFound,
    QueryResult,
    get_path,
    predicate_shape,
    query_array,
)
from ctxsync.registry.base_registry_store import BaseRegistryStore
from ctxsync.registry.registry_factory import create_registry_store
from ctxsync.registry.sync_registry import SyncRegistry
from ctxsync.storage.derived_store import DerivedStore

logger = logging.getLogger(__name__)

_POLL_INTERVAL_S = 0.05

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def first_available(*lookups: Callable[[], Awaitable[T | None]]) -> T | None:
    """Result of the first lookup that yields one, trying them in order."""
    for lookup in lookups:
        found = await lookup()
        if found is not None:
            return found
    return None


class ContextEngine:
    """Document synchronization and progressive context loading service."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        alerts: AlertChannel | None = None,
        sections: SectionResolver | None = None,
        registry_store: BaseRegistryStore | None = None,
        cache: TieredCache | None = None,
    ) -> None:
        self._settings = settings or load_settings()
        s = self._settings
        self._alerts = alerts or LoggingAlertChannel()
        self._derived = DerivedStore(s.state_root)
        self._registry = SyncRegistry(registry_store or create_registry_store(s), self._alerts)
        self._cache = cache or create_tiered_cache(s)
        self._scanner = SourceScanner(s)
        self._detector = ChangeDetector(
            s, self._registry, self._scanner, derived_exists=self._derived.exists
        )
        self._converter = Converter.from_settings(s)
        self._retry = RetryConfig.from_settings(s)
        self._allocator = BudgetAllocator(s.session_token_limit, s.budget_warning_threshold)
        self._loader = ProgressiveLoader(
            self,
            self._allocator,
            self._cache,
            sections or StaticSectionMapping.from_settings(s),
            s.level_multipliers_list,
        )
        self._doc_locks = KeyedLocks()
        self._inflight: dict[str, asyncio.Event] = {}
        self._snapshots: dict[str, DerivedRepresentation] = {}
        self._queue: asyncio.Queue[ChangeEvent] | None = None
        self._pool: WorkerPool | None = None
        self._watch_task: asyncio.Task | None = None
        self._watch_stop: asyncio.Event | None = None
        self._started = False

    # --- Lifecycle ---

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> SyncRegistry:
        return self._registry

    @property
    def allocator(self) -> BudgetAllocator:
        return self._allocator

    @property
    def cache(self) -> TieredCache:
        return self._cache

    @property
    def detector(self) -> ChangeDetector:
        return self._detector

    async def start(self) -> None:
        """Open persisted state, rebuilding it if it is corrupt or missing."""
        if self._started:
            return
        Path(self._settings.state_root).mkdir(parents=True, exist_ok=True)
        self._queue = asyncio.Queue(maxsize=self._settings.event_queue_size)
        self._pool = WorkerPool(
            self._queue, self.handle_event, self._settings.effective_worker_count
        )
        self._pool.start()
        self._started = True

        intact = self._registry.open()
        derived_ids = await asyncio.to_thread(self._derived.document_ids)
        if not intact or (len(self._registry) == 0 and derived_ids):
            await self.rebuild()
        else:
            for entry in self._registry.list_by_status("synced"):
                self._cache.activate(entry.document_id, entry.source_fingerprint)
        logger.info(
            "Engine started: %d documents tracked under %s",
            len(self._registry), self._settings.source_root,
        )

    async def close(self) -> None:
        if not self._started:
            return
        await self.stop_watching()
        if self._pool is not None:
            await self._pool.stop()
        self._registry.close()
        self._cache.close()
        self._started = False
        logger.info("Engine closed")

    async def __aenter__(self) -> ContextEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _require_started(self) -> None:
        if not self._started:
            raise RuntimeError("ContextEngine is not started; use 'async with' or start()")

    # --- Write side ---

    async def handle_event(self, event: ChangeEvent) -> RegistryEntry | None:
        """Apply one change event (worker entry point)."""
        if event.change_type == "deleted" and not event.path.exists():
            async with self._doc_locks.hold(event.document_id):
                return await self._orphan(event.document_id)
        return await self.sync_document(event.document_id, event.path)

    async def sync_document(self, document_id: str, path: Path | None = None) -> RegistryEntry | None:
        """Bring one document's representation in line with its source.

        Returns the resulting registry entry, or None for an unknown document
        whose source does not exist.
        """
        self._require_started()
        self._inflight.setdefault(document_id, asyncio.Event())
        try:
            async with self._doc_locks.hold(document_id):
                with log_context(document_id=document_id, operation="convert"):
                    return await self._sync_locked(document_id, path)
        finally:
            if not self._doc_locks.busy(document_id):
                event = self._inflight.pop(document_id, None)
                if event is not None:
                    event.set()

    async def _sync_locked(self, document_id: str, path: Path | None) -> RegistryEntry | None:
        path = path or self._scanner.path_for(document_id)
        entry = self._registry.get(document_id)
        try:
            source = await read_source(path, document_id, self._retry)
        except SourceUnreadable as e:
            logger.error("Giving up on %s after %d attempts: %s", document_id, e.attempts, e.last_error)
            self._alerts.source_unreadable(document_id, e.attempts, str(e.last_error))
            await self._cache.invalidate(document_id)
            return await self._record(self._registry.mark_error, document_id, str(e), source_fingerprint="")

        if source is None:
            return await self._orphan(document_id)

        if (
            entry is not None
            and entry.status == "synced"
            and entry.source_fingerprint == source.fingerprint
            and entry.derived_fingerprint == source.fingerprint
            and self._derived.exists(document_id)
        ):
            logger.debug("%s unchanged, skipping conversion", document_id)
            return entry

        # leaving "synced": no request issued from here on may hit old entries
        await self._cache.invalidate(document_id)
        await self._record(self._registry.mark_outdated, document_id, category_for(document_id))

        try:
            result = await self._pool.run_blocking(self._converter.convert, source)
            if result.ok:
                await self._pool.run_blocking(self._derived.write, result.representation)
        except Exception as e:
            logger.error(
                "Regenerating %s failed, keeping last good data: %s", document_id, e, exc_info=True
            )
            # not a content problem, so no fingerprint: the next scan retries it
            return await self._record(
                self._registry.mark_error, document_id, f"{type(e).__name__}: {e}", source_fingerprint=""
            )
        if not result.ok:
            logger.warning("Conversion of %s failed, keeping last good data: %s", document_id, result.error.reason)
            return await self._record(
                self._registry.mark_error, document_id, result.error.reason, source.fingerprint
            )

        rep = result.representation
        self._snapshots[document_id] = rep
        entry = await self._record(self._registry.mark_synced, rep.meta)
        self._cache.activate(document_id, rep.fingerprint)
        return entry

    async def _orphan(self, document_id: str) -> RegistryEntry | None:
        entry = self._registry.get(document_id)
        if entry is None or entry.status == "orphaned":
            return entry
        await self._cache.invalidate(document_id)
        self._snapshots.pop(document_id, None)
        return await self._record(self._registry.mark_orphan, document_id)

    async def _record(self, transition: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Apply a registry transition on a worker thread.

        Stores persist every transition before returning, which must not
        stall the event loop.
        """
        return await asyncio.to_thread(transition, *args, **kwargs)

    async def scan_once(self) -> SyncReport:
        """One full reconciliation pass through the worker pool."""
        self._require_started()
        with log_context(operation="scan"):
            events = await self._detector.scan()
            for event in events:
                await self._queue.put(event)
            await self._pool.drain()
        return self.sync_report()

    async def start_watching(self) -> None:
        """Run the change detector in the background until stop_watching()."""
        self._require_started()
        if self._watch_task is not None:
            return
        self._watch_stop = asyncio.Event()
        ready = asyncio.Event()
        task = asyncio.create_task(
            self._detector.watch(self._queue, self._watch_stop, ready), name="ctxsync-watch"
        )
        ready_wait = asyncio.create_task(ready.wait())
        await asyncio.wait({task, ready_wait}, return_when=asyncio.FIRST_COMPLETED)
        if task.done():
            # watcher failed to start; surface its error
            ready_wait.cancel()
            self._watch_stop = None
            task.result()
            return
        self._watch_task = task
        # the observer only reports new events; catch up on edits made while stopped
        await self.scan_once()

    async def stop_watching(self) -> None:
        if self._watch_task is None:
            return
        self._watch_stop.set()
        await self._watch_task
        self._watch_task = None
        self._watch_stop = None

    async def rebuild(self) -> SyncReport:
        """Reconstruct all sync state from sources plus derived files.

        Derived files whose fingerprint still matches their source are
        adopted without reconversion; derived files without a source become
        orphans.
        """
        self._require_started()
        logger.warning("Rebuilding registry from %s", self._settings.source_root)
        await self._record(self._registry.clear)
        self._snapshots.clear()
        sources = await asyncio.to_thread(self._scanner.discover)

        for doc_id, path in sources.items():
            rep = await asyncio.to_thread(self._derived.read, doc_id)
            try:
                source = await read_source(path, doc_id, self._retry)
            except SourceUnreadable:
                source = None
            if rep is not None and source is not None and rep.fingerprint == source.fingerprint:
                self._snapshots[doc_id] = rep
                await self._record(self._registry.mark_synced, rep.meta)
                self._cache.activate(doc_id, rep.fingerprint)
            else:
                await self._queue.put(
                    ChangeEvent(document_id=doc_id, change_type="added", path=path, detected_at=_now())
                )
        await self._pool.drain()

        for doc_id in await asyncio.to_thread(self._derived.document_ids):
            if doc_id in sources:
                continue
            rep = await asyncio.to_thread(self._derived.read, doc_id)
            if rep is None:
                continue
            await self._record(
                self._registry.upsert,
                RegistryEntry(
                    document_id=doc_id,
                    status="orphaned",
                    source_fingerprint=rep.fingerprint,
                    derived_fingerprint=rep.fingerprint,
                    category=rep.meta.category,
                    byte_size=rep.meta.byte_size,
                    estimated_tokens=rep.meta.estimated_tokens,
                    last_synced=rep.meta.last_synced,
                    updated_at=_now(),
                    orphaned_at=_now(),
                )
            )
        return self.sync_report()

    async def purge_orphans(self, now: datetime | None = None) -> list[str]:
        """Delete orphans older than the grace period: entry, derived file, cache."""
        self._require_started()
        purged: list[str] = []
        for doc_id in self._registry.expired_orphans(self._settings.orphan_grace_s, now):
            async with self._doc_locks.hold(doc_id):
                if self._registry.status(doc_id) != "orphaned":
                    continue
                with log_context(document_id=doc_id, operation="purge"):
                    await asyncio.to_thread(self._derived.delete, doc_id)
                    await self._cache.forget(doc_id)
                    await self._record(self._registry.remove, doc_id)
                    self._snapshots.pop(doc_id, None)
                    logger.info("Purged orphan %s", doc_id)
                purged.append(doc_id)
        return purged

    # --- Read side ---

    async def _wait_settled(self, document_id: str, timeout: float) -> bool:
        """Wait until no conversion of document_id is pending, up to timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            event = self._inflight.get(document_id)
            entry = self._registry.get(document_id)
            if event is None and (entry is None or entry.status != "outdated"):
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            if event is not None:
                try:
                    await asyncio.wait_for(event.wait(), remaining)
                except asyncio.TimeoutError:
                    return False
            else:
                await asyncio.sleep(min(_POLL_INTERVAL_S, remaining))

    async def _representation(self, document_id: str) -> DerivedRepresentation | None:
        rep = self._snapshots.get(document_id)
        if rep is None:
            rep = await asyncio.to_thread(self._derived.read, document_id)
            if rep is not None:
                self._snapshots[document_id] = rep
        return rep

    async def snapshot(self, document_id: str) -> Snapshot:
        """Current servable snapshot of a document.

        Raises:
            DocumentNotFound: Unknown or orphaned id, or neither a derived
                file nor a readable source exists.
        """
        self._require_started()
        entry = self._registry.get(document_id)
        if entry is None:
            raise DocumentNotFound(document_id)
        if document_id in self._inflight or entry.status == "outdated":
            settled = await self._wait_settled(
                document_id, self._settings.conversion_wait_timeout_s
            )
            if not settled:
                logger.warning("Timed out waiting for conversion of %s", document_id)
            entry = self._registry.get(document_id)
            if entry is None:
                raise DocumentNotFound(document_id)
        if entry.status == "orphaned":
            raise DocumentNotFound(document_id, "source was deleted")

        snap = await first_available(
            lambda: self._derived_snapshot(entry),
            lambda: self._raw_snapshot(entry),
        )
        if snap is None:
            raise DocumentNotFound(document_id, "no representation available")
        return snap

    async def _derived_snapshot(self, entry: RegistryEntry) -> Snapshot | None:
        rep = await self._representation(entry.document_id)
        if rep is None:
            return None
        stale = entry.status != "synced" or rep.fingerprint != entry.source_fingerprint
        return Snapshot(representation=rep, stale=stale)

    async def _raw_snapshot(self, entry: RegistryEntry) -> Snapshot | None:
        """Summary view read from the source itself, always flagged stale."""
        document_id = entry.document_id
        if entry.status == "synced":
            self._schedule_sync(document_id, "derived file is missing")
        try:
            source = await read_source(self._scanner.path_for(document_id), document_id, self._retry)
        except SourceUnreadable:
            return None
        if source is None:
            return None
        logger.warning("No derived data for %s, serving raw source", document_id)
        rep = await asyncio.to_thread(self._converter.raw_view, source)
        return Snapshot(representation=rep, stale=True)

    def _schedule_sync(self, document_id: str, reason: str) -> None:
        if document_id in self._inflight:
            return
        logger.info("Scheduling regeneration of %s: %s", document_id, reason)
        event = ChangeEvent(
            document_id=document_id,
            change_type="modified",
            path=self._scanner.path_for(document_id),
            detected_at=_now(),
        )
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Event queue full, %s is regenerated on the next scan", document_id)

    async def load(self, request: LoadRequest) -> LoadResult:
        """Serve one load request.

        Raises:
            DocumentNotFound: If nothing can be served for the document.
        """
        self._require_started()
        with log_context(document_id=request.document_id, consumer_id=request.consumer_id, operation="load"):
            result = await self._loader.load(request)
        logger.debug(
            "Loaded %s at level %d for %s (%d tokens)",
            request.document_id, result.level, request.consumer_id, result.tokens_charged,
        )
        return result

    async def load_context(
        self,
        document_id: str,
        level: int | None = None,
        *,
        budget: int | None = None,
        consumer_id: str = "default",
        priority: int = 0,
        critical: bool = False,
        consumer_category: str | None = None,
    ) -> LoadResult:
        """Load a document at a level, or at the best level within a budget.

        With both level and budget, level caps the budget search. With
        neither, the configured default level is used.
        """
        if budget is not None:
            target: LevelTarget | BudgetTarget = BudgetTarget(
                tokens=budget, max_level=level or 4
            )
        else:
            target = LevelTarget(level=level or self._settings.default_load_level)
        return await self.load(
            LoadRequest(
                consumer_id=consumer_id,
                document_id=document_id,
                target=target,
                priority=priority,
                critical=critical,
                consumer_category=consumer_category,
            )
        )

    async def load_batch(self, requests: Sequence[LoadRequest]) -> list[LoadResult | CtxSyncError]:
        """Serve competing requests, arbitrating each consumer's remaining budget.

        Per consumer, requests are served greedily by (priority, critical);
        those that do not fit share what is left and are downgraded.
        Results come back in input order; a request that cannot be served
        at all yields its DocumentNotFound in place of a result.
        """
        self._require_started()
        results: list[LoadResult | CtxSyncError | None] = [None] * len(requests)
        by_consumer: dict[str, list[int]] = {}
        for i, request in enumerate(requests):
            by_consumer.setdefault(request.consumer_id, []).append(i)

        for consumer_id, indices in by_consumer.items():
            group = [requests[i] for i in indices]
            wants: list[int] = []
            for request in group:
                try:
                    wants.append(await self._loader.quote(request))
                except DocumentNotFound:
                    wants.append(0)

            pool_left = self._allocator.remaining(consumer_id)
            for grant in BudgetAllocator.allocate(group, wants, pool_left):
                request = group[grant.index]
                tokens = grant.tokens if grant.fits else pool_left
                sized = request.model_copy(
                    update={
                        "target": BudgetTarget(
                            tokens=max(0, tokens),
                            max_level=self._loader.start_level(request),
                        )
                    }
                )
                try:
                    result = await self.load(sized)
                except DocumentNotFound as e:
                    results[indices[grant.index]] = e
                    continue
                pool_left = max(0, pool_left - result.tokens_charged)
                results[indices[grant.index]] = result
        return results  # type: ignore[return-value]

    async def lookup_path(self, document_id: str, path: str) -> QueryResult:
        """Value at path (or PathNotFound) plus whether the snapshot was stale.

        Unknown and orphaned documents yield PathNotFound, never stale data.
        """
        self._require_started()
        with log_context(document_id=document_id, operation="query"):
            try:
                snap = await self.snapshot(document_id)
            except DocumentNotFound:
                return QueryResult(PathNotFound(path=path, missing=document_id))
            rep = snap.representation
            if snap.stale:
                logger.warning("Path %s answered from a stale snapshot of %s", path, document_id)
                return QueryResult(get_path(rep, path), stale=True)

            shape = f"path:{path}"
            lookup = await self._cache.get(document_id, rep.fingerprint, shape)
            if lookup.hit:
                missing = lookup.value.get("missing")
                if missing is not None:
                    return QueryResult(PathNotFound(path=path, missing=missing))
                return QueryResult(copy.deepcopy(lookup.value["value"]))

            value = get_path(rep, path)
            if isinstance(value, PathNotFound):
                cached = {"missing": value.missing}
            else:
                cached = {"value": copy.deepcopy(value)}
            await self._cache.put(document_id, rep.fingerprint, shape, cached)
            return QueryResult(value)

    async def get_path(self, document_id: str, path: str) -> Any:
        """Value at path in the document's structured data, or PathNotFound.

        Use lookup_path() to learn whether the value came from stale data.
        """
        return (await self.lookup_path(document_id, path)).value

    async def lookup_array(
        self,
        document_id: str,
        path: str,
        predicate: dict[str, Any] | None = None,
    ) -> QueryResult:
        """Matching elements of the array at path, in original order, plus
        whether the snapshot was stale.

        Unknown and orphaned documents and missing arrays yield [].

        Raises:
            ValueError: On an unsupported comparison operator.
        """
        self._require_started()
        with log_context(document_id=document_id, operation="query"):
            try:
                snap = await self.snapshot(document_id)
            except DocumentNotFound:
                return QueryResult([])
            rep = snap.representation
            if snap.stale:
                logger.warning("Query on %s answered from a stale snapshot of %s", path, document_id)
                return QueryResult(query_array(rep, path, predicate), stale=True)

            shape = f"query:{path}:{predicate_shape(predicate)}"
            lookup = await self._cache.get(document_id, rep.fingerprint, shape)
            if lookup.hit:
                return QueryResult(copy.deepcopy(lookup.value))
            matches = query_array(rep, path, predicate)
            await self._cache.put(document_id, rep.fingerprint, shape, copy.deepcopy(matches))
            return QueryResult(matches)

    async def query_array(
        self,
        document_id: str,
        path: str,
        predicate: dict[str, Any] | None = None,
    ) -> list[Any]:
        """Matching elements of the array at path; see lookup_array()."""
        return (await self.lookup_array(document_id, path, predicate)).value

    def get_sync_status(self, document_id: str) -> SyncStatus | None:
        """Sync status of a document, or None if it is not tracked."""
        return self._registry.status(document_id)

    def sync_report(self) -> SyncReport:
        return self._registry.report()

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def usage_report(self) -> dict[str, dict[str, float | int]]:
        return self._allocator.usage_report()
