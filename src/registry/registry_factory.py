# src/registry/registry_factory.py — v1
"""Factory for registry store instantiation."""

from __future__ import annotations

from ctxsync.config.settings import Settings
from ctxsync.registry.base_registry_store import BaseRegistryStore
from ctxsync.storage import layout


def create_registry_store(settings: Settings) -> BaseRegistryStore:
    """Instantiate the configured registry backend under state_root."""
    backend = settings.registry_backend
    path = layout.registry_path(settings.state_root, backend)

    if backend == "json":
        from ctxsync.registry.json_store import JsonRegistryStore
        return JsonRegistryStore(path)

    if backend == "sqlite":
        from ctxsync.registry.sqlite_store import SqliteRegistryStore
        return SqliteRegistryStore(path)

    raise ValueError(f"Unsupported registry backend: {backend!r}")
