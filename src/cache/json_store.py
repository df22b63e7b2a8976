# src/cache/json_store.py — v2
"""JSON file-based durable cache store (default CACHE_BACKEND=json).

One file per entry, grouped in one directory per document so a document's
entries can be dropped together. File names are hashes of the keys.
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from ctxsync.cache.base_cache_store import BaseCacheStore
from ctxsync.cache.models import CacheEntry
from ctxsync.storage.derived_store import atomic_write

logger = logging.getLogger(__name__)


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class JsonCacheStore(BaseCacheStore):
    """File-based cache store using JSON files."""

    def __init__(self, cache_root: Path | str) -> None:
        self._root = Path(cache_root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    async def get(self, key: str) -> CacheEntry | None:
        path = self._entry_path(key)
        try:
            entry = CacheEntry.model_validate_json(path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as e:
            logger.warning("Failed to read cache entry %s: %s", key, e)
            return None
        if entry.key != key or entry.is_expired(datetime.now(timezone.utc)):
            return None
        return entry

    async def put(self, entry: CacheEntry) -> None:
        atomic_write(self._entry_path(entry.key), entry.model_dump_json().encode("utf-8"))

    async def delete(self, key: str) -> None:
        self._entry_path(key).unlink(missing_ok=True)

    async def delete_document(self, document_id: str) -> int:
        doc_dir = self._root / _digest(document_id)[:32]
        if not doc_dir.is_dir():
            return 0
        count = sum(1 for _ in doc_dir.glob("*.json"))
        shutil.rmtree(doc_dir, ignore_errors=True)
        return count

    async def list_keys(self) -> list[str]:
        keys: list[str] = []
        for path in sorted(self._root.glob("*/*.json")):
            try:
                keys.append(json.loads(path.read_text(encoding="utf-8"))["key"])
            except (OSError, ValueError, KeyError):
                continue
        return keys

    def _entry_path(self, key: str) -> Path:
        """Return file path for a cache key."""
        document_id = key.split("|", 1)[0]
        return self._root / _digest(document_id)[:32] / f"{_digest(key)}.json"
