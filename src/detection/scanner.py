# src/detection/scanner.py — v1
"""Source discovery — find the documents under the source root."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ctxsync.detection.fingerprint import document_id_for

if TYPE_CHECKING:
    from ctxsync.config.settings import Settings

logger = logging.getLogger(__name__)

IGNORED_NAMES = frozenset({".DS_Store", "Thumbs.db", "desktop.ini"})


class SourceScanner:
    """Decide which files are source documents and list them.

    Hidden files, editor leftovers, configured skip directories and the
    engine's own state directory are never sources.
    """

    def __init__(self, settings: Settings) -> None:
        self._root = Path(settings.source_root).resolve()
        self._state_root = Path(settings.state_root).resolve()
        self._extensions = set(settings.source_extensions_list)
        self._skip_dirs = set(settings.skip_dirs_list)

    @property
    def root(self) -> Path:
        return self._root

    def is_source(self, path: Path) -> bool:
        """Check whether a path (existing or not) names a source document."""
        path = Path(path).resolve()
        try:
            rel = path.relative_to(self._root)
        except ValueError:
            return False
        if path == self._state_root or self._state_root in path.parents:
            return False
        if path.suffix.lower() not in self._extensions:
            return False
        name = path.name
        if name in IGNORED_NAMES or name.startswith(".") or name.endswith("~"):
            return False
        return not any(part in self._skip_dirs or part.startswith(".") for part in rel.parts[:-1])

    def document_id(self, path: Path) -> str:
        return document_id_for(path, self._root)

    def path_for(self, document_id: str) -> Path:
        return self._root.joinpath(*document_id.split("/"))

    def discover(self) -> dict[str, Path]:
        """Map every current source document id to its path, sorted by id.

        Raises:
            ValueError: If the source root is not a directory.
        """
        if not self._root.is_dir():
            raise ValueError(f"Source root is not a directory: {self._root}")

        found: dict[str, Path] = {}
        for path in sorted(self._root.rglob("*")):
            if path.is_file() and self.is_source(path):
                found[self.document_id(path)] = path

        logger.debug("Discovered %d source documents under %s", len(found), self._root)
        return dict(sorted(found.items()))
