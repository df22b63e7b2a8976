# src/cache/cache_factory.py — v3
"""Factory for cache store instantiation."""

from __future__ import annotations

from ctxsync.cache.base_cache_store import BaseCacheStore
from ctxsync.cache.memory_store import MemoryCacheStore
from ctxsync.cache.tiered_cache import TieredCache
from ctxsync.config.settings import Settings
from ctxsync.storage import layout


def create_cache_store(settings: Settings) -> BaseCacheStore | None:
    """Instantiate the configured durable backend, or None when disabled."""
    if not settings.cache_durable_enabled:
        return None

    backend = settings.cache_backend

    if backend == "json":
        from ctxsync.cache.json_store import JsonCacheStore
        return JsonCacheStore(cache_root=layout.cache_dir(settings.state_root))

    if backend == "sqlite":
        from ctxsync.cache.sqlite_store import SqliteCacheStore
        return SqliteCacheStore(db_path=layout.cache_db_path(settings.state_root))

    if backend == "redis":
        from ctxsync.cache.redis_store import RedisCacheStore
        if not settings.cache_redis_url:
            raise ValueError(
                "CACHE_REDIS_URL must be set when CACHE_BACKEND=redis"
            )
        return RedisCacheStore(redis_url=settings.cache_redis_url)

    raise ValueError(f"Unsupported cache backend: {backend!r}")


def create_tiered_cache(settings: Settings) -> TieredCache:
    """Memory tier plus the configured durable tier."""
    memory = MemoryCacheStore(
        max_entries=settings.cache_memory_max_entries,
        ttl_s=settings.cache_memory_ttl_s,
    )
    return TieredCache(
        memory=memory,
        durable=create_cache_store(settings),
        durable_ttl_s=settings.cache_durable_ttl_s,
    )
