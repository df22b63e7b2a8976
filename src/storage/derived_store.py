# src/storage/derived_store.py — v1
"""Durable store of derived representations, one JSON file per document.

Writes go to a temporary sibling first and are moved into place with
os.replace, so readers see either the old file or the new one.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ctxsync.core.models import DerivedRepresentation
from ctxsync.storage import layout

logger = logging.getLogger(__name__)


def serialize(representation: DerivedRepresentation) -> bytes:
    """Canonical serialized form; equal representations give equal bytes."""
    return representation.model_dump_json(indent=2).encode("utf-8")


def atomic_write(path: Path, payload: bytes) -> None:
    """Write payload to path via a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class DerivedStore:
    """Read and write derived files under {state_root}/derived."""

    def __init__(self, state_root: Path) -> None:
        self._state_root = Path(state_root)

    def path_for(self, document_id: str) -> Path:
        return layout.derived_path(self._state_root, document_id)

    def exists(self, document_id: str) -> bool:
        return self.path_for(document_id).is_file()

    def write(self, representation: DerivedRepresentation) -> Path:
        path = self.path_for(representation.document_id)
        atomic_write(path, serialize(representation))
        logger.debug("Wrote derived file %s", path)
        return path

    def read(self, document_id: str) -> DerivedRepresentation | None:
        """Load a derived file; missing or unreadable files yield None."""
        path = self.path_for(document_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            return DerivedRepresentation.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring unreadable derived file %s: %s", path, e.error_count())
            return None

    def delete(self, document_id: str) -> bool:
        path = self.path_for(document_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        # prune now-empty category directories
        root = layout.derived_dir(self._state_root)
        parent = path.parent
        while parent != root and root in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent
        return True

    def document_ids(self) -> list[str]:
        root = layout.derived_dir(self._state_root)
        if not root.is_dir():
            return []
        return sorted(
            layout.document_id_from_derived(self._state_root, p)
            for p in root.rglob(f"*{layout.DERIVED_SUFFIX}")
            if p.is_file() and not p.name.startswith(".")
        )
