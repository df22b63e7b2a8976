# src/budget/allocator.py — v1
"""Budget Allocator — per-consumer ledgers and greedy arbitration.

Every charge happens under one lock together with the decision that led to
it, so two concurrent loads for the same consumer cannot both spend the same
remaining tokens.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Sequence, TypeVar

from ctxsync.core.models import BudgetLedger, LoadRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Grant:
    """Share of a pooled budget handed to one request of a batch.

    tokens is None for requests that did not fit: they get whatever is left
    of the pool when their turn comes, and are downgraded to fit it.
    """

    index: int
    tokens: int | None
    fits: bool


class BudgetAllocator:
    """Tracks token consumption per consumer/session."""

    def __init__(
        self,
        default_limit: int = 100_000,
        warning_threshold: float = 0.8,
        limits: dict[str, int] | None = None,
    ) -> None:
        self._default_limit = default_limit
        self._warning_threshold = warning_threshold
        self._limits = dict(limits or {})
        self._ledgers: dict[str, BudgetLedger] = {}
        self._lock = threading.Lock()

    def _ledger(self, consumer_id: str) -> BudgetLedger:
        ledger = self._ledgers.get(consumer_id)
        if ledger is None:
            limit = self._limits.get(consumer_id, self._default_limit)
            ledger = BudgetLedger(consumer_id=consumer_id, limit=limit)
            self._ledgers[consumer_id] = ledger
        return ledger

    def ledger(self, consumer_id: str) -> BudgetLedger:
        """Copy of a consumer's ledger (created on first use)."""
        with self._lock:
            return self._ledger(consumer_id).model_copy()

    def remaining(self, consumer_id: str) -> int:
        with self._lock:
            return self._ledger(consumer_id).remaining

    def set_limit(self, consumer_id: str, limit: int) -> None:
        with self._lock:
            self._limits[consumer_id] = limit
            self._ledger(consumer_id).limit = limit

    def reset(self, consumer_id: str) -> None:
        """Start a new session for consumer_id."""
        with self._lock:
            self._ledgers.pop(consumer_id, None)

    def charge(
        self,
        consumer_id: str,
        decide: Callable[[int], tuple[int, bool, T]],
    ) -> tuple[BudgetLedger, T]:
        """Decide and record one delivery atomically.

        decide receives the consumer's remaining tokens and returns
        (cost, over_budget, payload); the cost is recorded before the lock is
        released. decide must not block.
        """
        with self._lock:
            ledger = self._ledger(consumer_id)
            before = ledger.remaining
            cost, over_budget, payload = decide(before)
            ledger.consumed += cost
            ledger.deliveries += 1
            if over_budget:
                ledger.over_budget_deliveries += 1
            crossed = (
                not ledger.warned
                and ledger.limit > 0
                and ledger.consumed >= ledger.limit * self._warning_threshold
            )
            if crossed:
                ledger.warned = True
            snapshot = ledger.model_copy()

        if over_budget:
            logger.warning(
                "Over-budget delivery to %s: %d tokens with %d remaining",
                consumer_id, cost, before,
            )
        if crossed:
            logger.warning(
                "Consumer %s reached %.0f%% of its token budget (%d/%d)",
                consumer_id, 100 * snapshot.consumed / snapshot.limit,
                snapshot.consumed, snapshot.limit,
                extra={"data": {"consumer_id": consumer_id, "consumed": snapshot.consumed}},
            )
        return snapshot, payload

    @staticmethod
    def allocate(
        requests: Sequence[LoadRequest],
        wants: Sequence[int],
        available: int,
    ) -> list[Grant]:
        """Split a shared budget across competing requests.

        Requests are served in descending (priority, critical) order, ties in
        submission order. Each request whose want fits in what is left gets
        it in full; the others follow, in the same order, with grant None.
        """
        order = sorted(
            range(len(requests)),
            key=lambda i: (-requests[i].priority, not requests[i].critical, i),
        )
        left = max(0, available)
        fitting: list[Grant] = []
        downgraded: list[Grant] = []
        for i in order:
            if wants[i] <= left:
                left -= wants[i]
                fitting.append(Grant(index=i, tokens=wants[i], fits=True))
            else:
                downgraded.append(Grant(index=i, tokens=None, fits=False))
        return fitting + downgraded

    def usage_report(self) -> dict[str, dict[str, float | int]]:
        """Allocated vs used per consumer."""
        with self._lock:
            ledgers = [l.model_copy() for l in self._ledgers.values()]
        return {
            l.consumer_id: {
                "limit": l.limit,
                "consumed": l.consumed,
                "remaining": l.remaining,
                "deliveries": l.deliveries,
                "over_budget_deliveries": l.over_budget_deliveries,
                "utilization": round(l.consumed / l.limit, 4) if l.limit else 0.0,
            }
            for l in sorted(ledgers, key=lambda l: l.consumer_id)
        }
