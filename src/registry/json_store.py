# src/registry/json_store.py — v1
"""JSON file registry store (default REGISTRY_BACKEND=json).

The whole registry is one document, rewritten atomically on every change:
{"version": 1, "entries": {document_id: entry}}.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ctxsync.core.errors import RegistryCorruption
from ctxsync.core.models import RegistryEntry
from ctxsync.registry.base_registry_store import BaseRegistryStore
from ctxsync.storage.derived_store import atomic_write

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class JsonRegistryStore(BaseRegistryStore):
    """Registry persisted as a single JSON file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()
        self._entries: dict[str, RegistryEntry] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, RegistryEntry]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._entries = {}
            return {}
        except (OSError, UnicodeDecodeError) as e:
            raise RegistryCorruption(self._path, f"unreadable: {e}") from e

        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            raise RegistryCorruption(self._path, f"invalid JSON: {e.msg}") from e
        if not isinstance(doc, dict) or not isinstance(doc.get("entries"), dict):
            raise RegistryCorruption(self._path, "missing 'entries' mapping")
        if doc.get("version") != FORMAT_VERSION:
            raise RegistryCorruption(self._path, f"unsupported version {doc.get('version')!r}")

        entries: dict[str, RegistryEntry] = {}
        for doc_id, data in doc["entries"].items():
            try:
                entry = RegistryEntry.model_validate(data)
            except ValidationError as e:
                raise RegistryCorruption(self._path, f"invalid entry {doc_id!r}: {e}") from e
            if entry.document_id != doc_id:
                raise RegistryCorruption(self._path, f"entry key mismatch for {doc_id!r}")
            entries[doc_id] = entry

        self._entries = dict(entries)
        return entries

    def put(self, entry: RegistryEntry) -> None:
        self._entries[entry.document_id] = entry
        self._flush()

    def delete(self, document_id: str) -> None:
        if self._entries.pop(document_id, None) is not None:
            self._flush()

    def reset(self) -> None:
        self._entries = {}
        self._flush()

    def _flush(self) -> None:
        doc = {
            "version": FORMAT_VERSION,
            "entries": {
                k: self._entries[k].model_dump(mode="json") for k in sorted(self._entries)
            },
        }
        atomic_write(self._path, json.dumps(doc, indent=2).encode("utf-8"))
