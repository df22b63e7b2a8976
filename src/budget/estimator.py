# src/budget/estimator.py — v1
"""Token cost estimation for progressive loads."""

from __future__ import annotations

import json
import math
from typing import Any

from ctxsync.conversion.structure_detector import estimate_tokens

# minimal / standard / detailed / full
DEFAULT_LEVEL_MULTIPLIERS: tuple[float, ...] = (0.05, 0.15, 0.35, 1.0)


def level_estimate(estimated_tokens: int, level: int, multipliers=DEFAULT_LEVEL_MULTIPLIERS) -> int:
    """Predicted cost of loading a document at level (1-4)."""
    return math.ceil(estimated_tokens * multipliers[level - 1])


def measure_tokens(data: Any) -> int:
    """Token estimate of a delivered payload in its canonical JSON form."""
    return estimate_tokens(json.dumps(data, sort_keys=True, separators=(",", ":"), default=str))


def load_cost(estimated_tokens: int, level: int, data: Any, multipliers=DEFAULT_LEVEL_MULTIPLIERS) -> int:
    """Cost charged for a delivery: the larger of prediction and measurement,
    so a ledger is never charged less than what was actually handed out."""
    return max(level_estimate(estimated_tokens, level, multipliers), measure_tokens(data))
