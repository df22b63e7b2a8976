# src/cache/sqlite_store.py — v2
"""SQLite-based durable cache store (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3 — no external dependency.
Better than JSON files for large numbers of cached query results.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from ctxsync.cache.base_cache_store import BaseCacheStore
from ctxsync.cache.models import CacheEntry

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    document_id TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_cache_document ON cache_entries(document_id);
"""


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed durable cache."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        self._lock = threading.Lock()

    async def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        try:
            entry = CacheEntry.model_validate_json(row[0])
        except ValidationError as e:
            logger.warning("Failed to deserialize cache entry %s: %s", key, e)
            return None
        if entry.is_expired(datetime.now(timezone.utc)):
            await self.delete(key)
            return None
        return entry

    async def put(self, entry: CacheEntry) -> None:
        with self._lock:
            self._conn.execute(
                """INSERT OR REPLACE INTO cache_entries (key, document_id, data)
                   VALUES (?, ?, ?)""",
                (entry.key, entry.document_id, entry.model_dump_json()),
            )
            self._conn.commit()

    async def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            self._conn.commit()

    async def delete_document(self, document_id: str) -> int:
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM cache_entries WHERE document_id = ?", (document_id,)
            )
            self._conn.commit()
            return cursor.rowcount

    async def list_keys(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute("SELECT key FROM cache_entries ORDER BY key").fetchall()
        return [r[0] for r in rows]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
