# src/core/errors.py — v1
"""Error taxonomy.

Only exceptions live here. Negative outcomes that are part of normal control
flow (a cache miss, a missing query path, an exhausted budget) are values, see
cache.models.CacheLookup, query.engine.PathNotFound and LoadResult.over_budget.
"""

from __future__ import annotations

from pathlib import Path


class CtxSyncError(Exception):
    """Base class for all ctxsync errors."""


class SourceUnreadable(CtxSyncError):
    """A source document could not be read after all retries."""

    def __init__(self, document_id: str, attempts: int, last_error: Exception):
        self.document_id = document_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Source '{document_id}' unreadable after {attempts} attempts: {last_error}"
        )


class SchemaViolation(CtxSyncError):
    """Source content cannot be turned into a valid derived representation."""

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Schema violation in '{document_id}': {reason}")


class RegistryCorruption(CtxSyncError):
    """The registry backing store is missing required structure or unreadable."""

    def __init__(self, path: Path | str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Registry store {self.path} is corrupt: {reason}")


class DocumentNotFound(CtxSyncError, KeyError):
    """No servable representation exists for the requested document."""

    def __init__(self, document_id: str, reason: str = "unknown document"):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"{document_id}: {reason}")

    def __str__(self) -> str:
        return f"{self.document_id}: {self.reason}"
