# src/cache/models.py — v2
"""Cache data models: entries, lookup results and statistics."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

CacheTier = Literal["memory", "durable"]


def make_key(document_id: str, fingerprint: str, shape: str) -> str:
    """Cache key: document id + snapshot fingerprint + query shape."""
    return f"{document_id}|{fingerprint}|{shape}"


class CacheEntry(BaseModel):
    """One cached value for one (document, fingerprint, shape)."""

    key: str
    document_id: str
    fingerprint: str
    shape: str
    value: Any
    tier: CacheTier
    inserted_at: datetime
    ttl_s: float | None = None

    def is_expired(self, now: datetime) -> bool:
        if self.ttl_s is None:
            return False
        return (now - self.inserted_at).total_seconds() >= self.ttl_s


class CacheLookup(BaseModel):
    """Outcome of a tiered lookup. A miss is a normal result, not an error."""

    hit: bool = False
    tier: CacheTier | None = None
    value: Any = None


class CacheStats(BaseModel):
    """Hit/miss counters across both tiers."""

    memory_hits: int = 0
    durable_hits: int = 0
    misses: int = 0
    puts: int = 0
    invalidations: int = 0
    memory_entries: int = 0

    @property
    def hits(self) -> int:
        return self.memory_hits + self.durable_hits

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total, 4) if total else 0.0

    def to_report(self) -> dict[str, Any]:
        return {**self.model_dump(), "hits": self.hits, "hit_rate": self.hit_rate}
