# tests/unit/cache/test_cache_factory.py — v4
"""Tests for cache/cache_factory.py."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from ctxsync.cache.cache_factory import create_cache_store, create_tiered_cache
from ctxsync.cache.json_store import JsonCacheStore
from ctxsync.cache.sqlite_store import SqliteCacheStore
from ctxsync.config.settings import ConfigurationError


class TestCreateCacheStore:
    def test_default_json(self, settings):
        store = create_cache_store(settings)
        assert isinstance(store, JsonCacheStore)
        assert (settings.state_root / "cache").is_dir()

    def test_sqlite_backend(self, make_settings):
        store = create_cache_store(make_settings(cache_backend="sqlite"))
        assert isinstance(store, SqliteCacheStore)
        store.close()

    def test_disabled(self, make_settings):
        assert create_cache_store(make_settings(cache_durable_enabled=False)) is None

    def test_redis_missing_url_rejected_by_settings(self, make_settings):
        with pytest.raises(ConfigurationError, match="CACHE_REDIS_URL"):
            make_settings(cache_backend="redis", cache_redis_url="")

    def test_redis_backend(self, make_settings):
        settings = make_settings(cache_backend="redis", cache_redis_url="redis://cache:6379/0")
        fake_redis = MagicMock()
        with patch.dict("sys.modules", {"redis": fake_redis}):
            store = create_cache_store(settings)
        fake_redis.Redis.from_url.assert_called_once_with(
            "redis://cache:6379/0", decode_responses=True
        )
        assert store._client is fake_redis.Redis.from_url.return_value

    def test_unsupported_backend(self, make_settings):
        with pytest.raises(ValueError):
            make_settings(cache_backend="nonexistent")


class TestCreateTieredCache:
    def test_memory_only(self, make_settings):
        cache = create_tiered_cache(make_settings(cache_durable_enabled=False))
        assert cache.durable is None

    def test_with_durable(self, settings):
        assert isinstance(create_tiered_cache(settings).durable, JsonCacheStore)
