# src/registry/sync_registry.py — v1
"""Sync Registry — authoritative map from document id to sync state.

Reads never take a lock: they go to the current entries dict, which is only
ever mutated in place for ids that already exist, and replaced wholesale
(copy-on-write, under the structural lock) when ids are added or removed.
Writes for one id are serialized by that id's lock.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Callable, Mapping

from ctxsync.core.alerts import AlertChannel, LoggingAlertChannel
from ctxsync.core.errors import RegistryCorruption
from ctxsync.core.models import RegistryEntry, RepresentationMeta, SyncReport, SyncStatus
from ctxsync.registry.base_registry_store import BaseRegistryStore

logger = logging.getLogger(__name__)

STATUSES: tuple[SyncStatus, ...] = ("synced", "outdated", "orphaned", "error")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SyncRegistry:
    """Per-document sync state backed by a BaseRegistryStore."""

    def __init__(
        self,
        store: BaseRegistryStore,
        alerts: AlertChannel | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._store = store
        self._alerts = alerts or LoggingAlertChannel()
        self._clock = clock
        self._entries: dict[str, RegistryEntry] = {}
        self._structure_lock = threading.RLock()
        self._id_locks: dict[str, threading.Lock] = {}
        self._store_lock = threading.Lock()
        self.recovered_from_corruption = False

    # --- Lifecycle ---

    def open(self) -> bool:
        """Load persisted state.

        Returns:
            False if the store was corrupt and had to be reset; the caller
            must then rebuild state from a full scan.
        """
        try:
            with self._store_lock:
                entries = self._store.load()
        except RegistryCorruption as e:
            logger.critical(
                "Registry store corrupt (%s), resetting for rebuild", e.reason,
                extra={"data": {"path": e.path}},
            )
            self._alerts.registry_corrupted(e.path, e.reason)
            with self._store_lock:
                self._store.reset()
            entries = {}
            self.recovered_from_corruption = True
        with self._structure_lock:
            self._entries = dict(entries)
        logger.info("Registry loaded with %d entries", len(entries))
        return not self.recovered_from_corruption

    def close(self) -> None:
        with self._store_lock:
            self._store.close()

    # --- Reads (lock-free) ---

    def get(self, document_id: str) -> RegistryEntry | None:
        return self._entries.get(document_id)

    def status(self, document_id: str) -> SyncStatus | None:
        entry = self._entries.get(document_id)
        return entry.status if entry else None

    def snapshot(self) -> Mapping[str, RegistryEntry]:
        """Read-only copy of every entry at this instant."""
        return MappingProxyType(dict(self._entries))

    def list_by_status(self, status: SyncStatus) -> list[RegistryEntry]:
        entries = self._entries
        return sorted(
            (e for e in list(entries.values()) if e.status == status),
            key=lambda e: e.document_id,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._entries

    # --- Writes ---

    def _lock_for(self, document_id: str) -> threading.Lock:
        lock = self._id_locks.get(document_id)
        if lock is None:
            with self._structure_lock:
                lock = self._id_locks.setdefault(document_id, threading.Lock())
        return lock

    def upsert(self, entry: RegistryEntry) -> RegistryEntry:
        """Insert or replace an entry."""
        with self._lock_for(entry.document_id):
            self._write(entry)
        return entry

    def _write(self, entry: RegistryEntry) -> None:
        with self._store_lock:
            self._store.put(entry)
        doc_id = entry.document_id
        with self._structure_lock:
            if doc_id in self._entries:
                self._entries[doc_id] = entry
                return
            entries = dict(self._entries)
            entries[doc_id] = entry
            self._entries = entries

    def _update(self, document_id: str, **changes) -> RegistryEntry:
        with self._lock_for(document_id):
            current = self._entries.get(document_id)
            now = self._clock()
            if current is None:
                entry = RegistryEntry(document_id=document_id, updated_at=now, **changes)
            else:
                entry = current.model_copy(update={**changes, "updated_at": now})
            self._write(entry)
        previous = current.status if current else None
        if previous != entry.status:
            logger.info(
                "Document %s: %s -> %s", document_id, previous or "new", entry.status,
                extra={"data": {"document_id": document_id, "status": entry.status}},
            )
        return entry

    def mark_synced(self, meta: RepresentationMeta) -> RegistryEntry:
        """Record a freshly written representation built from meta.source_fingerprint."""
        return self._update(
            meta.document_id,
            status="synced",
            source_fingerprint=meta.source_fingerprint,
            derived_fingerprint=meta.source_fingerprint,
            category=meta.category,
            byte_size=meta.byte_size,
            estimated_tokens=meta.estimated_tokens,
            source_modified_at=meta.generated_at,
            last_synced=meta.last_synced,
            orphaned_at=None,
            error=None,
        )

    def mark_outdated(self, document_id: str, category: str | None = None) -> RegistryEntry:
        changes: dict = {"status": "outdated", "orphaned_at": None}
        if category is not None:
            changes["category"] = category
        return self._update(document_id, **changes)

    def mark_error(
        self, document_id: str, error: str, source_fingerprint: str | None = None
    ) -> RegistryEntry:
        """Record a failed regeneration; the last derived fingerprint is kept.

        source_fingerprint is the content that failed, or "" when the source
        could not be read at all (so the next scan retries it).
        """
        changes: dict = {"status": "error", "error": error, "orphaned_at": None}
        if source_fingerprint is not None:
            changes["source_fingerprint"] = source_fingerprint
        return self._update(document_id, **changes)

    def mark_orphan(self, document_id: str) -> RegistryEntry | None:
        current = self._entries.get(document_id)
        if current is None:
            return None
        if current.status == "orphaned":
            return current
        return self._update(document_id, status="orphaned", orphaned_at=self._clock())

    def remove(self, document_id: str) -> bool:
        with self._lock_for(document_id):
            with self._structure_lock:
                if document_id not in self._entries:
                    return False
                with self._store_lock:
                    self._store.delete(document_id)
                entries = dict(self._entries)
                del entries[document_id]
                self._entries = entries
                self._id_locks.pop(document_id, None)
        logger.info("Removed %s from registry", document_id)
        return True

    def clear(self) -> None:
        """Drop every entry (full rebuild)."""
        with self._structure_lock:
            with self._store_lock:
                self._store.reset()
            self._entries = {}

    # --- Reports ---

    def expired_orphans(self, grace_s: float, now: datetime | None = None) -> list[str]:
        now = now or self._clock()
        cutoff = now - timedelta(seconds=grace_s)
        return [
            e.document_id
            for e in self.list_by_status("orphaned")
            if e.orphaned_at is not None and e.orphaned_at <= cutoff
        ]

    def report(self) -> SyncReport:
        """Totals per status plus the documents needing attention."""
        entries = sorted(self.snapshot().values(), key=lambda e: e.document_id)
        counts = Counter(e.status for e in entries)
        return SyncReport(
            generated_at=self._clock(),
            total=len(entries),
            counts={s: counts.get(s, 0) for s in STATUSES},
            outdated=[e.document_id for e in entries if e.status == "outdated"],
            errored=[e.document_id for e in entries if e.status == "error"],
            orphaned=[e.document_id for e in entries if e.status == "orphaned"],
        )
