# src/registry/base_registry_store.py — v1
"""Abstract registry store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ctxsync.core.models import RegistryEntry


class BaseRegistryStore(ABC):
    """Durable backing store for SyncRegistry entries.

    Stores are not thread-safe on their own; SyncRegistry serializes calls.
    """

    @abstractmethod
    def load(self) -> dict[str, RegistryEntry]:
        """Load every entry. A missing store loads as empty.

        Raises:
            RegistryCorruption: If the store exists but cannot be read.
        """

    @abstractmethod
    def put(self, entry: RegistryEntry) -> None:
        """Insert or replace one entry."""

    @abstractmethod
    def delete(self, document_id: str) -> None:
        """Remove one entry; unknown ids are ignored."""

    @abstractmethod
    def reset(self) -> None:
        """Discard all stored state, leaving an empty valid store."""

    def close(self) -> None:
        """Release resources."""
