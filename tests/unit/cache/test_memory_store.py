# tests/unit/cache/test_memory_store.py — v1
"""Tests for cache/memory_store.py — LRU with TTL."""

from __future__ import annotations

from ctxsync.cache.memory_store import MemoryCacheStore


class _Clock:
    def __init__(self) -> None:
        self.t = 0.0

    def __call__(self) -> float:
        return self.t


class TestMemoryCacheStore:
    def test_put_get(self):
        store = MemoryCacheStore()
        store.put("k", "a.md", {"v": 1})
        assert store.get("k") == (True, {"v": 1})
        assert store.get("missing") == (False, None)

    def test_cached_none_is_a_hit(self):
        store = MemoryCacheStore()
        store.put("k", "a.md", None)
        assert store.get("k") == (True, None)

    def test_lru_eviction(self):
        store = MemoryCacheStore(max_entries=2)
        store.put("a", "d", 1)
        store.put("b", "d", 2)
        store.get("a")
        store.put("c", "d", 3)
        assert store.get("b") == (False, None)
        assert store.get("a") == (True, 1)
        assert len(store) == 2

    def test_ttl(self):
        clock = _Clock()
        store = MemoryCacheStore(ttl_s=10, clock=clock)
        store.put("k", "a.md", 1)
        clock.t = 9.9
        assert store.get("k")[0] is True
        clock.t = 10.0
        assert store.get("k")[0] is False
        assert len(store) == 0

    def test_delete_document(self):
        store = MemoryCacheStore()
        store.put("a|1", "a.md", 1)
        store.put("a|2", "a.md", 2)
        store.put("b|1", "b.md", 3)
        assert store.delete_document("a.md") == 2
        assert store.delete_document("a.md") == 0
        assert len(store) == 1

    def test_delete_and_clear(self):
        store = MemoryCacheStore()
        store.put("k", "a.md", 1)
        store.delete("k")
        store.delete("k")
        assert len(store) == 0
        store.put("k", "a.md", 1)
        store.clear()
        assert store.get("k") == (False, None)
