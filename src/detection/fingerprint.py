# src/detection/fingerprint.py — v1
"""Content fingerprints and document identity.

A fingerprint is the SHA-256 of the raw source bytes. Any byte change,
including whitespace, yields a new fingerprint and therefore a reconversion.
"""

from __future__ import annotations

import hashlib
from pathlib import Path, PurePosixPath

DEFAULT_CATEGORY = "default"


def compute_fingerprint(raw_bytes: bytes) -> str:
    """SHA-256 hex digest of raw document bytes."""
    return hashlib.sha256(raw_bytes).hexdigest()


def document_id_for(path: Path, source_root: Path) -> str:
    """Stable document id: POSIX path relative to the source root.

    Raises:
        ValueError: If path is not below source_root.
    """
    rel = Path(path).resolve().relative_to(Path(source_root).resolve())
    return PurePosixPath(*rel.parts).as_posix()


def category_for(document_id: str) -> str:
    """Owning consumer category = first directory segment of the id."""
    parts = PurePosixPath(document_id).parts
    return parts[0] if len(parts) > 1 else DEFAULT_CATEGORY
