# src/detection/watcher.py — v1
"""Filesystem watcher built on watchdog.

watchdog delivers events on its own observer thread; they are handed to the
event loop with call_soon_threadsafe and only touched there.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from ctxsync.core.models import ChangeType

logger = logging.getLogger(__name__)

OnChange = Callable[[ChangeType, Path], None]


class _ForwardingHandler(FileSystemEventHandler):
    """Translate watchdog events into (change_type, path) calls on the loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, on_change: OnChange) -> None:
        super().__init__()
        self._loop = loop
        self._on_change = on_change

    def _forward(self, change_type: ChangeType, path: str | bytes) -> None:
        if isinstance(path, bytes):
            path = path.decode()
        try:
            self._loop.call_soon_threadsafe(self._on_change, change_type, Path(path))
        except RuntimeError:
            # loop already closed during shutdown
            pass

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward("added", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward("modified", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward("deleted", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward("deleted", event.src_path)
            self._forward("added", event.dest_path)


class SourceWatcher:
    """Recursive watch of one source root."""

    def __init__(self, root: Path, on_change: OnChange) -> None:
        self._root = Path(root)
        self._on_change = on_change
        self._observer: BaseObserver | None = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._observer is not None:
            return
        loop = loop or asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_ForwardingHandler(loop, self._on_change), str(self._root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Watching %s", self._root)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=2)
        self._observer = None
        logger.info("Stopped watching %s", self._root)
