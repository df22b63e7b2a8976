# src/cache/redis_store.py — v2
"""Redis-based durable cache store (CACHE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Expiry is delegated to Redis key TTLs.
"""

from __future__ import annotations

import logging
import math

from pydantic import ValidationError

from ctxsync.cache.base_cache_store import BaseCacheStore
from ctxsync.cache.models import CacheEntry

logger = logging.getLogger(__name__)

_KEY_PREFIX = "ctxsync:cache:"
_DOC_PREFIX = "ctxsync:cache-doc:"


class RedisCacheStore(BaseCacheStore):
    """Redis-backed durable cache."""

    def __init__(self, redis_url: str) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install redis"
            ) from e

        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> CacheEntry | None:
        data = self._client.get(f"{_KEY_PREFIX}{key}")
        if data is None:
            return None
        try:
            return CacheEntry.model_validate_json(data)
        except ValidationError as e:
            logger.warning("Failed to deserialize cache entry %s: %s", key, e)
            return None

    async def put(self, entry: CacheEntry) -> None:
        ttl = math.ceil(entry.ttl_s) if entry.ttl_s else None
        self._client.set(f"{_KEY_PREFIX}{entry.key}", entry.model_dump_json(), ex=ttl)
        # per-document key set so invalidation does not need SCAN
        self._client.sadd(f"{_DOC_PREFIX}{entry.document_id}", entry.key)

    async def delete(self, key: str) -> None:
        self._client.delete(f"{_KEY_PREFIX}{key}")
        self._client.srem(f"{_DOC_PREFIX}{key.split('|', 1)[0]}", key)

    async def delete_document(self, document_id: str) -> int:
        doc_key = f"{_DOC_PREFIX}{document_id}"
        keys = self._client.smembers(doc_key)
        if keys:
            self._client.delete(*(f"{_KEY_PREFIX}{k}" for k in keys))
        self._client.delete(doc_key)
        return len(keys)

    async def list_keys(self) -> list[str]:
        prefix_len = len(_KEY_PREFIX)
        return sorted(k[prefix_len:] for k in self._client.scan_iter(f"{_KEY_PREFIX}*"))

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()
