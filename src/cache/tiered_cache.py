# src/cache/tiered_cache.py — v1
"""Cache Manager — memory tier in front of an optional durable tier.

Each document has at most one valid fingerprint. Lookups and insertions for
any other fingerprint are misses/no-ops, so flipping the valid fingerprint is
the invalidation: it takes effect for every later request at once, and the
physical purge of old entries can follow without blocking readers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ctxsync.cache.base_cache_store import BaseCacheStore
from ctxsync.cache.memory_store import MemoryCacheStore
from ctxsync.cache.models import CacheEntry, CacheLookup, CacheStats, make_key

logger = logging.getLogger(__name__)


class TieredCache:
    """Two-tier cache keyed by (document, fingerprint, shape)."""

    def __init__(
        self,
        memory: MemoryCacheStore | None = None,
        durable: BaseCacheStore | None = None,
        durable_ttl_s: float | None = 86400.0,
    ) -> None:
        self._memory = memory or MemoryCacheStore()
        self._durable = durable
        self._durable_ttl_s = durable_ttl_s
        self._valid: dict[str, str | None] = {}
        self._stats = CacheStats()

    @property
    def durable(self) -> BaseCacheStore | None:
        return self._durable

    def valid_fingerprint(self, document_id: str) -> str | None:
        return self._valid.get(document_id)

    def activate(self, document_id: str, fingerprint: str) -> None:
        """Make fingerprint the one servable snapshot of document_id."""
        self._valid[document_id] = fingerprint

    def deactivate(self, document_id: str) -> None:
        """Atomically stop serving any snapshot of document_id."""
        self._valid[document_id] = None

    async def invalidate(self, document_id: str) -> None:
        """Deactivate the document, then purge its entries from both tiers."""
        self.deactivate(document_id)
        removed = self._memory.delete_document(document_id)
        if self._durable is not None:
            removed += await self._durable.delete_document(document_id)
        self._stats.invalidations += 1
        logger.debug("Invalidated %d cache entries for %s", removed, document_id)

    async def forget(self, document_id: str) -> None:
        """Invalidate and drop all knowledge of the document (purge)."""
        await self.invalidate(document_id)
        self._valid.pop(document_id, None)

    async def get(self, document_id: str, fingerprint: str, shape: str) -> CacheLookup:
        if self._valid.get(document_id) != fingerprint:
            self._stats.misses += 1
            return CacheLookup()

        key = make_key(document_id, fingerprint, shape)
        found, value = self._memory.get(key)
        if found:
            self._stats.memory_hits += 1
            return CacheLookup(hit=True, tier="memory", value=value)

        if self._durable is not None:
            entry = await self._durable.get(key)
            # re-check: an invalidation may have landed while awaiting
            if entry is not None and self._valid.get(document_id) == fingerprint:
                self._memory.put(key, document_id, entry.value)
                self._stats.durable_hits += 1
                return CacheLookup(hit=True, tier="durable", value=entry.value)

        self._stats.misses += 1
        return CacheLookup()

    async def put(self, document_id: str, fingerprint: str, shape: str, value: Any) -> bool:
        """Store value unless fingerprint is no longer the valid snapshot."""
        if self._valid.get(document_id) != fingerprint:
            return False
        key = make_key(document_id, fingerprint, shape)
        self._memory.put(key, document_id, value)
        if self._durable is not None:
            await self._durable.put(
                CacheEntry(
                    key=key,
                    document_id=document_id,
                    fingerprint=fingerprint,
                    shape=shape,
                    value=value,
                    tier="durable",
                    inserted_at=datetime.now(timezone.utc),
                    ttl_s=self._durable_ttl_s,
                )
            )
            if self._valid.get(document_id) != fingerprint:
                # invalidated mid-write: remove what was just written
                await self._durable.delete(key)
                self._memory.delete(key)
                return False
        self._stats.puts += 1
        return True

    def stats(self) -> CacheStats:
        return self._stats.model_copy(update={"memory_entries": len(self._memory)})

    def close(self) -> None:
        self._memory.clear()
        if self._durable is not None:
            self._durable.close()
