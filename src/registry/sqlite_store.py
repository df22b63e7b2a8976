# src/registry/sqlite_store.py — v1
"""SQLite registry store (REGISTRY_BACKEND=sqlite).

Uses stdlib sqlite3. One row per document, so writes touch a single row.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from ctxsync.core.errors import RegistryCorruption
from ctxsync.core.models import RegistryEntry
from ctxsync.registry.base_registry_store import BaseRegistryStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS registry_entries (
    document_id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    data TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_registry_status ON registry_entries(status);
"""


class SqliteRegistryStore(BaseRegistryStore):
    """SQLite-backed registry store."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(_SCHEMA)
            except sqlite3.DatabaseError as e:
                conn.close()
                raise RegistryCorruption(self._db_path, str(e)) from e
            self._conn = conn
        return self._conn

    def load(self) -> dict[str, RegistryEntry]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT document_id, data FROM registry_entries").fetchall()
        except sqlite3.DatabaseError as e:
            raise RegistryCorruption(self._db_path, str(e)) from e

        entries: dict[str, RegistryEntry] = {}
        for doc_id, data in rows:
            try:
                entries[doc_id] = RegistryEntry.model_validate_json(data)
            except ValidationError as e:
                raise RegistryCorruption(self._db_path, f"invalid entry {doc_id!r}: {e}") from e
        return entries

    def put(self, entry: RegistryEntry) -> None:
        conn = self._connect()
        conn.execute(
            """INSERT OR REPLACE INTO registry_entries
               (document_id, status, data, updated_at)
               VALUES (?, ?, ?, ?)""",
            (
                entry.document_id,
                entry.status,
                entry.model_dump_json(),
                entry.updated_at.isoformat(),
            ),
        )
        conn.commit()

    def delete(self, document_id: str) -> None:
        conn = self._connect()
        conn.execute("DELETE FROM registry_entries WHERE document_id = ?", (document_id,))
        conn.commit()

    def reset(self) -> None:
        """Drop the database file entirely and start over."""
        self.close()
        for suffix in ("", "-wal", "-shm"):
            Path(f"{self._db_path}{suffix}").unlink(missing_ok=True)
        self._connect()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
