# src/detection/debounce.py — v1
"""Per-document trailing debounce for change events.

Every new event for a document restarts that document's window; only when the
window elapses without further events is one coalesced event emitted. Must be
driven from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ctxsync.core.models import ChangeEvent

logger = logging.getLogger(__name__)


def coalesce(previous: ChangeEvent, latest: ChangeEvent) -> ChangeEvent:
    """Merge two events for the same document into one.

    The latest event wins, except that a document that was added inside the
    window stays "added", and one deleted then recreated is "modified".
    """
    change_type = latest.change_type
    if previous.change_type == "added" and latest.change_type == "modified":
        change_type = "added"
    elif previous.change_type == "deleted" and latest.change_type == "added":
        change_type = "modified"
    fingerprint = latest.fingerprint if latest.fingerprint is not None else previous.fingerprint
    if change_type == "deleted":
        fingerprint = None
    return latest.model_copy(update={"change_type": change_type, "fingerprint": fingerprint})


class DebounceBuffer:
    """Coalesce bursts of events per document id."""

    def __init__(
        self,
        window_s: float,
        emit: Callable[[ChangeEvent], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._window_s = window_s
        self._emit = emit
        self._loop = loop
        self._pending: dict[str, ChangeEvent] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    def push(self, event: ChangeEvent) -> None:
        doc_id = event.document_id
        previous = self._pending.get(doc_id)
        self._pending[doc_id] = coalesce(previous, event) if previous else event

        timer = self._timers.pop(doc_id, None)
        if timer is not None:
            timer.cancel()

        if self._window_s <= 0:
            self._fire(doc_id)
            return
        loop = self._loop or asyncio.get_running_loop()
        self._timers[doc_id] = loop.call_later(self._window_s, self._fire, doc_id)

    def _fire(self, doc_id: str) -> None:
        self._timers.pop(doc_id, None)
        event = self._pending.pop(doc_id, None)
        if event is None:
            return
        logger.debug("Debounced %s event for %s", event.change_type, doc_id)
        self._emit(event)

    def flush(self) -> None:
        """Emit every pending event now."""
        for doc_id in list(self._pending):
            timer = self._timers.pop(doc_id, None)
            if timer is not None:
                timer.cancel()
            self._fire(doc_id)

    def cancel(self) -> None:
        """Drop every pending event."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()

    @property
    def pending_count(self) -> int:
        return len(self._pending)
