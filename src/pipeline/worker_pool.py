# src/pipeline/worker_pool.py — v1
"""Fixed-size worker pool draining the change-event queue.

N worker tasks consume one bounded asyncio.Queue. CPU-bound conversion runs
on a ThreadPoolExecutor of the same size. Events for one document are
serialized by a per-document lock, events for different documents run in
parallel.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

from ctxsync.core.models import ChangeEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyedLocks:
    """One asyncio.Lock per key, dropped again when nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def busy(self, key: str) -> bool:
        """True while anyone holds or waits on key."""
        return key in self._users


class WorkerPool:
    """Consume ChangeEvents with a fixed number of worker tasks."""

    def __init__(
        self,
        queue: asyncio.Queue[ChangeEvent],
        handler: Callable[[ChangeEvent], Awaitable[Any]],
        worker_count: int,
    ) -> None:
        self._queue = queue
        self._handler = handler
        self._worker_count = max(1, worker_count)
        self._tasks: list[asyncio.Task] = []
        self._executor: ThreadPoolExecutor | None = None

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self._worker_count, thread_name_prefix="ctxsync-convert"
        )
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"ctxsync-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.debug("Started %d workers", self._worker_count)

    async def run_blocking(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking callable on the pool's executor, keeping the log context."""
        loop = asyncio.get_running_loop()
        ctx = contextvars.copy_context()
        return await loop.run_in_executor(self._executor, functools.partial(ctx.run, fn, *args))

    async def _worker(self, index: int) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._handler(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Worker %d failed on %s event for %s",
                    index, event.change_type, event.document_id,
                )
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        logger.debug("Worker pool stopped")
