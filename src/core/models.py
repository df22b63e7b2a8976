# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types — all imports come from core.models.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

# === ENUMERATED VALUES ===

SyncStatus = Literal["synced", "outdated", "orphaned", "error"]
ChangeType = Literal["added", "modified", "deleted"]
LoadLevel = Literal[1, 2, 3, 4]

LEVEL_SUMMARY: LoadLevel = 1
LEVEL_STRUCTURED: LoadLevel = 2
LEVEL_SECTIONS: LoadLevel = 3
LEVEL_FULL: LoadLevel = 4


# === SOURCE SIDE ===


class SourceDocument(BaseModel):
    """Authoritative prose input as read from disk. The engine never writes it."""

    document_id: str
    path: Path
    content: bytes
    fingerprint: str
    modified_at: datetime

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class ChangeEvent(BaseModel):
    """A (debounced) change to one source document."""

    document_id: str
    change_type: ChangeType
    path: Path
    fingerprint: str | None = None
    detected_at: datetime


# === DERIVED SIDE ===


class FieldTag(BaseModel):
    """Top-level field of a derived tree and whether level-1 loads include it."""

    name: str
    critical: bool = False


class RepresentationMeta(BaseModel):
    """Metadata block stored alongside every derived representation."""

    document_id: str
    source_file: str
    category: str
    schema_version: str
    document_type: str = "documentation"
    generated_at: datetime
    source_fingerprint: str
    last_synced: datetime
    sync_status: SyncStatus = "synced"
    byte_size: int
    estimated_tokens: int


class SectionedContent(BaseModel):
    """Raw section text keyed by section key, plus the full source text."""

    source_text: str
    sections: dict[str, str] = Field(default_factory=dict)


class DerivedRepresentation(BaseModel):
    """Structured, synchronized distillation of a source document."""

    meta: RepresentationMeta
    summary: str
    fields: list[FieldTag] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)
    content: SectionedContent

    @property
    def document_id(self) -> str:
        return self.meta.document_id

    @property
    def fingerprint(self) -> str:
        return self.meta.source_fingerprint

    def critical_fields(self) -> list[str]:
        return [f.name for f in self.fields if f.critical]


# === REGISTRY ===


class RegistryEntry(BaseModel):
    """Authoritative sync state of one document."""

    document_id: str
    status: SyncStatus
    source_fingerprint: str = ""
    derived_fingerprint: str | None = None
    category: str = "default"
    byte_size: int = 0
    estimated_tokens: int = 0
    source_modified_at: datetime | None = None
    last_synced: datetime | None = None
    updated_at: datetime
    orphaned_at: datetime | None = None
    error: str | None = None

    @property
    def has_representation(self) -> bool:
        return self.derived_fingerprint is not None


class SyncReport(BaseModel):
    """Status totals plus the documents needing attention."""

    generated_at: datetime
    total: int = 0
    counts: dict[str, int] = Field(default_factory=dict)
    outdated: list[str] = Field(default_factory=list)
    errored: list[str] = Field(default_factory=list)
    orphaned: list[str] = Field(default_factory=list)


# === LOAD REQUESTS ===


class LevelTarget(BaseModel):
    """Ask for a fixed fidelity level; the consumer's ledger bounds the cost."""

    kind: Literal["level"] = "level"
    level: LoadLevel


class BudgetTarget(BaseModel):
    """Ask for the richest level that fits into `tokens`."""

    kind: Literal["budget"] = "budget"
    tokens: int = Field(ge=0)
    max_level: LoadLevel = LEVEL_FULL


LoadTarget = Annotated[Union[LevelTarget, BudgetTarget], Field(discriminator="kind")]


class LoadRequest(BaseModel):
    """One consumer's request for a document's context."""

    consumer_id: str
    document_id: str
    target: LoadTarget
    priority: int = 0
    critical: bool = False
    consumer_category: str | None = None


class LoadResult(BaseModel):
    """Data delivered for a load request."""

    document_id: str
    consumer_id: str
    requested_level: LoadLevel
    level: LoadLevel
    data: dict[str, Any]
    meta: RepresentationMeta
    tokens_charged: int
    over_budget: bool = False
    stale: bool = False
    from_cache: bool = False


# === BUDGET ===


class BudgetLedger(BaseModel):
    """Token consumption of one consumer/session against its limit."""

    consumer_id: str
    limit: int
    consumed: int = 0
    deliveries: int = 0
    over_budget_deliveries: int = 0
    warned: bool = False

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.consumed)
