# src/cache/base_cache_store.py — v2
"""Abstract durable cache store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ctxsync.cache.models import CacheEntry


class BaseCacheStore(ABC):
    """Unified interface for durable cache backends."""

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve a live entry by key; expired or unreadable entries are misses."""

    @abstractmethod
    async def put(self, entry: CacheEntry) -> None:
        """Store an entry (upsert)."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove one entry."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> int:
        """Remove every entry of a document. Returns the number removed."""

    @abstractmethod
    async def list_keys(self) -> list[str]:
        """List all stored keys."""

    def close(self) -> None:
        """Release resources."""
