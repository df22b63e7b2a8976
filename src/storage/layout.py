# src/storage/layout.py — v2
"""State directory structure definition.

Everything under state_root is derived and can be deleted; a full scan
rebuilds it from the source documents.

    {state_root}/
        derived/<document_id>.json     one file per representation
        registry.json | registry.db    sync registry
        cache/                         durable cache tier (json/sqlite backends)
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath

DERIVED_DIR = "derived"
CACHE_DIR = "cache"
REGISTRY_JSON = "registry.json"
REGISTRY_DB = "registry.db"
CACHE_DB = "cache.db"
DERIVED_SUFFIX = ".json"


def derived_dir(state_root: Path) -> Path:
    return state_root / DERIVED_DIR


def derived_path(state_root: Path, document_id: str) -> Path:
    """Path of a document's derived file: the id with .json appended."""
    parts = PurePosixPath(document_id).parts
    if not parts or any(p in ("..", "/") for p in parts):
        raise ValueError(f"Invalid document id: {document_id!r}")
    return derived_dir(state_root).joinpath(*parts[:-1], parts[-1] + DERIVED_SUFFIX)


def document_id_from_derived(state_root: Path, path: Path) -> str:
    rel = path.relative_to(derived_dir(state_root)).as_posix()
    return rel[: -len(DERIVED_SUFFIX)]


def registry_path(state_root: Path, backend: str) -> Path:
    return state_root / (REGISTRY_DB if backend == "sqlite" else REGISTRY_JSON)


def cache_dir(state_root: Path) -> Path:
    return state_root / CACHE_DIR


def cache_db_path(state_root: Path) -> Path:
    return cache_dir(state_root) / CACHE_DB
