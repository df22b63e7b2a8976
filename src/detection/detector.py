# src/detection/detector.py — v1
"""Change Detector — one-shot reconciliation scans and continuous watching.

scan() compares every source document against the registry and returns one
event per difference. watch() feeds debounced filesystem events (plus an
optional periodic scan) into a bounded queue until stopped.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from ctxsync.core.errors import SourceUnreadable
from ctxsync.core.models import ChangeEvent, ChangeType
from ctxsync.detection.debounce import DebounceBuffer
from ctxsync.detection.retry import RetryConfig, read_source
from ctxsync.detection.scanner import SourceScanner
from ctxsync.detection.watcher import SourceWatcher

if TYPE_CHECKING:
    from ctxsync.config.settings import Settings
    from ctxsync.registry.sync_registry import SyncRegistry

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChangeDetector:
    """Detect source documents whose state differs from the registry."""

    def __init__(
        self,
        settings: Settings,
        registry: SyncRegistry,
        scanner: SourceScanner | None = None,
        derived_exists: Callable[[str], bool] | None = None,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._scanner = scanner or SourceScanner(settings)
        self._derived_exists = derived_exists
        self._retry = RetryConfig.from_settings(settings)
        self._rescan_task: asyncio.Task | None = None
        self._debounce: DebounceBuffer | None = None

    @property
    def scanner(self) -> SourceScanner:
        return self._scanner

    async def scan(self) -> list[ChangeEvent]:
        """Return one event per document whose fingerprint or presence changed.

        Unreadable sources are reported as "modified" without a fingerprint so
        the worker records the failure.
        Synced documents whose derived file is missing are reported as
        "modified" too.
        """
        sources = await asyncio.to_thread(self._scanner.discover)
        entries = self._registry.snapshot()
        events: list[ChangeEvent] = []

        for doc_id, path in sources.items():
            entry = entries.get(doc_id)
            try:
                source = await read_source(path, doc_id, self._retry)
            except SourceUnreadable:
                events.append(self._event(doc_id, "modified", path, None))
                continue
            if source is None:
                # vanished mid-scan, the deletion is picked up below next time
                continue
            if entry is None or entry.status == "orphaned":
                events.append(self._event(doc_id, "added", path, source.fingerprint))
            elif entry.source_fingerprint != source.fingerprint or entry.status == "outdated":
                events.append(self._event(doc_id, "modified", path, source.fingerprint))
            elif (
                entry.status == "synced"
                and self._derived_exists is not None
                and not self._derived_exists(doc_id)
            ):
                # derived file lost, regenerate from the unchanged source
                events.append(self._event(doc_id, "modified", path, source.fingerprint))

        for doc_id, entry in entries.items():
            if doc_id not in sources and entry.status != "orphaned":
                events.append(
                    self._event(doc_id, "deleted", self._scanner.path_for(doc_id), None)
                )

        logger.info(
            "Scan found %d changes across %d sources",
            len(events), len(sources),
            extra={"data": {"changes": len(events), "sources": len(sources)}},
        )
        return events

    async def watch(
        self,
        queue: asyncio.Queue[ChangeEvent],
        stop: asyncio.Event,
        ready: asyncio.Event | None = None,
    ) -> None:
        """Emit debounced change events onto queue until stop is set.

        ready, if given, is set once the filesystem observer is running.
        """
        loop = asyncio.get_running_loop()
        self._debounce = DebounceBuffer(
            self._settings.debounce_s, lambda ev: self._offer(queue, ev), loop
        )
        watcher = SourceWatcher(self._scanner.root, self._on_fs_change)
        watcher.start(loop)
        if ready is not None:
            ready.set()

        poller: asyncio.Task | None = None
        if self._settings.poll_interval_s > 0:
            poller = asyncio.create_task(self._poll(queue, stop))
        try:
            await stop.wait()
        finally:
            watcher.stop()
            self._debounce.cancel()
            self._debounce = None
            for task in (poller, self._rescan_task):
                if task is not None and not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass
            self._rescan_task = None

    def _on_fs_change(self, change_type: ChangeType, path: Path) -> None:
        if self._debounce is None or not self._scanner.is_source(path):
            return
        doc_id = self._scanner.document_id(path)
        self._debounce.push(self._event(doc_id, change_type, path, None))

    def _offer(self, queue: asyncio.Queue[ChangeEvent], event: ChangeEvent) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Event queue full, dropping %s event for %s; scheduling reconciliation scan",
                event.change_type, event.document_id,
            )
            if self._rescan_task is None or self._rescan_task.done():
                self._rescan_task = asyncio.get_running_loop().create_task(self._rescan(queue))

    async def _rescan(self, queue: asyncio.Queue[ChangeEvent]) -> None:
        await asyncio.sleep(self._settings.debounce_s)
        for event in await self.scan():
            await queue.put(event)

    async def _poll(self, queue: asyncio.Queue[ChangeEvent], stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._settings.poll_interval_s)
            except asyncio.TimeoutError:
                for event in await self.scan():
                    await queue.put(event)

    @staticmethod
    def _event(
        doc_id: str, change_type: ChangeType, path: Path, fingerprint: str | None
    ) -> ChangeEvent:
        return ChangeEvent(
            document_id=doc_id,
            change_type=change_type,
            path=path,
            fingerprint=fingerprint,
            detected_at=_now(),
        )
