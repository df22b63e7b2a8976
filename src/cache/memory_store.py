# src/cache/memory_store.py — v1
"""In-process LRU cache tier with a per-entry TTL.

Thread-safe; every operation is O(1) except delete_document, which is
proportional to that document's entry count.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable


class MemoryCacheStore:
    """Bounded LRU map of key -> value with expiry."""

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_s: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max(1, max_entries)
        self._ttl_s = ttl_s
        self._clock = clock
        self._data: OrderedDict[str, tuple[float, str, Any]] = OrderedDict()
        self._by_document: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[bool, Any]:
        """Return (found, value); expired entries are dropped and not found."""
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return False, None
            expires_at, _, value = item
            if self._clock() >= expires_at:
                self._drop(key)
                return False, None
            self._data.move_to_end(key)
            return True, value

    def put(self, key: str, document_id: str, value: Any) -> None:
        with self._lock:
            if key in self._data:
                self._drop(key)
            self._data[key] = (self._clock() + self._ttl_s, document_id, value)
            self._by_document.setdefault(document_id, set()).add(key)
            while len(self._data) > self._max_entries:
                oldest = next(iter(self._data))
                self._drop(oldest)

    def delete(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                self._drop(key)

    def delete_document(self, document_id: str) -> int:
        with self._lock:
            keys = self._by_document.pop(document_id, set())
            for key in keys:
                self._data.pop(key, None)
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._by_document.clear()

    def _drop(self, key: str) -> None:
        _, document_id, _ = self._data.pop(key)
        keys = self._by_document.get(document_id)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._by_document[document_id]

    def __len__(self) -> int:
        return len(self._data)
