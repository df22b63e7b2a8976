# src/loading/progressive_loader.py — v1
"""Progressive Loader — choose the richest level a consumer can afford.

Starting at the requested level (or the target's max level for budget
requests) the loader steps down one level at a time while the cost exceeds
the budget. If even level 1 does not fit it is delivered anyway, flagged
over_budget; a load is degraded, never refused, for budget reasons.

The level decision and the ledger charge happen in one atomic step at the
very end of a load, after the last await, so a cancelled load leaves the
ledger untouched.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from ctxsync.budget.allocator import BudgetAllocator
from ctxsync.budget.estimator import DEFAULT_LEVEL_MULTIPLIERS, level_estimate, load_cost
from ctxsync.cache.tiered_cache import TieredCache
from ctxsync.core.models import (
    LEVEL_SUMMARY,
    BudgetTarget,
    DerivedRepresentation,
    LevelTarget,
    LoadLevel,
    LoadRequest,
    LoadResult,
)
from ctxsync.loading.levels import build_view
from ctxsync.loading.section_mapping import SectionResolver, StaticSectionMapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """A representation as served to one request."""

    representation: DerivedRepresentation
    stale: bool = False


class SnapshotSource(Protocol):
    async def snapshot(self, document_id: str) -> Snapshot:
        """Current servable snapshot.

        Raises:
            DocumentNotFound: If nothing can be served for document_id.
        """


@dataclass(frozen=True)
class _Candidate:
    level: LoadLevel
    data: dict[str, Any]
    cost: int
    from_cache: bool


class ProgressiveLoader:
    """Serve LoadRequests at the best level that fits the budget."""

    def __init__(
        self,
        source: SnapshotSource,
        allocator: BudgetAllocator,
        cache: TieredCache | None = None,
        sections: SectionResolver | None = None,
        multipliers: tuple[float, ...] | list[float] = DEFAULT_LEVEL_MULTIPLIERS,
    ) -> None:
        self._source = source
        self._allocator = allocator
        self._cache = cache
        self._sections = sections or StaticSectionMapping()
        self._multipliers = tuple(multipliers)

    @property
    def allocator(self) -> BudgetAllocator:
        return self._allocator

    def start_level(self, request: LoadRequest) -> LoadLevel:
        target = request.target
        return target.level if isinstance(target, LevelTarget) else target.max_level

    def estimate(self, rep: DerivedRepresentation, level: int) -> int:
        """Predicted cost of level for rep, before building any view."""
        return level_estimate(rep.meta.estimated_tokens, level, self._multipliers)

    async def _candidate(
        self, rep: DerivedRepresentation, level: LoadLevel, category: str, cached: bool = True
    ) -> _Candidate:
        section_keys = self._sections.sections_for(category)
        shape = f"view:{level}:{category if section_keys is not None else '*'}"
        fp = rep.fingerprint
        # stale snapshots may share a fingerprint with the active one
        cache = self._cache if cached else None
        if cache is not None:
            lookup = await cache.get(rep.document_id, fp, shape)
            if lookup.hit:
                hit = lookup.value
                return _Candidate(
                    level=hit["level"],
                    data=copy.deepcopy(hit["data"]),
                    cost=hit["cost"],
                    from_cache=True,
                )

        eff, data = build_view(rep, level, section_keys)
        cost = load_cost(rep.meta.estimated_tokens, eff, data, self._multipliers)
        if cache is not None:
            await cache.put(rep.document_id, fp, shape, {"level": eff, "data": copy.deepcopy(data), "cost": cost})
        return _Candidate(level=eff, data=data, cost=cost, from_cache=False)

    async def quote(self, request: LoadRequest) -> int:
        """Cost of serving request at its starting level, without charging."""
        snap = await self._source.snapshot(request.document_id)
        rep = snap.representation
        category = request.consumer_category or rep.meta.category
        return (await self._candidate(rep, self.start_level(request), category, not snap.stale)).cost

    async def load(self, request: LoadRequest) -> LoadResult:
        """Deliver a request, charging the consumer's ledger exactly once.

        Raises:
            DocumentNotFound: Propagated from the snapshot source.
        """
        snap = await self._source.snapshot(request.document_id)
        rep = snap.representation
        category = request.consumer_category or rep.meta.category
        start = self.start_level(request)

        candidates: dict[int, _Candidate] = {}
        for level in range(start, 0, -1):
            candidates[level] = await self._candidate(rep, level, category, not snap.stale)

        target = request.target

        def decide(remaining: int) -> tuple[int, bool, tuple[_Candidate, bool]]:
            budget = remaining
            if isinstance(target, BudgetTarget):
                budget = min(target.tokens, remaining)
            for level in range(start, 0, -1):
                candidate = candidates[level]
                if candidate.cost <= budget:
                    return candidate.cost, False, (candidate, False)
            floor = candidates[LEVEL_SUMMARY]
            return floor.cost, True, (floor, True)

        _, (chosen, over_budget) = self._allocator.charge(request.consumer_id, decide)

        if chosen.level < start:
            logger.debug(
                "Downgraded %s for %s from level %d to %d",
                request.document_id, request.consumer_id, start, chosen.level,
            )
        if snap.stale:
            logger.warning("Serving stale snapshot of %s to %s", request.document_id, request.consumer_id)

        return LoadResult(
            document_id=request.document_id,
            consumer_id=request.consumer_id,
            requested_level=start,
            level=chosen.level,
            data=chosen.data,
            meta=rep.meta,
            tokens_charged=chosen.cost,
            over_budget=over_budget,
            stale=snap.stale,
            from_cache=chosen.from_cache,
        )
