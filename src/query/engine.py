# src/query/engine.py — v1
"""Query Engine — path lookups and filtered-array queries over derived data.

Both operations are pure functions of a representation snapshot. A missing
path is a PathNotFound value and a missing array is an empty list; neither is
an exception. Results are deep copies, so callers cannot alter the snapshot.
"""

from __future__ import annotations

import copy
import json
import operator
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from ctxsync.conversion.table_extractor import coerce_cell
from ctxsync.core.models import DerivedRepresentation

Predicate = Mapping[str, Any]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "==": operator.eq,
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class PathNotFound:
    """Negative result of a path lookup."""

    path: str
    missing: str = ""

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class QueryResult:
    """A query answer, flagged when it was read from a stale snapshot."""

    value: Any
    stale: bool = False


def parse_path(path: str) -> list[str]:
    """Split a query path on "/" (or "." when no slash is present)."""
    path = path.strip()
    delimiter = "/" if "/" in path else "."
    return [seg for seg in path.split(delimiter) if seg]


def _tree(source: DerivedRepresentation | Mapping[str, Any]) -> Any:
    return source.data if isinstance(source, DerivedRepresentation) else source


def _resolve(node: Any, segments: list[str]) -> tuple[bool, Any, str]:
    for seg in segments:
        if isinstance(node, Mapping):
            if seg not in node:
                return False, None, seg
            node = node[seg]
        elif isinstance(node, list):
            if not seg.isdigit() or int(seg) >= len(node):
                return False, None, seg
            node = node[int(seg)]
        else:
            return False, None, seg
    return True, node, ""


def get_path(source: DerivedRepresentation | Mapping[str, Any], path: str) -> Any:
    """Resolve path into the structured tree.

    An empty path returns the whole tree.

    Returns:
        A copy of the subtree or scalar, or PathNotFound.
    """
    found, value, missing = _resolve(_tree(source), parse_path(path))
    if not found:
        return PathNotFound(path=path, missing=missing)
    return copy.deepcopy(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if _is_number(actual) and _is_number(expected):
        return _OPERATORS[op](actual, expected)
    if type(actual) is not type(expected):
        return False
    if op in ("=", "=="):
        return actual == expected
    if isinstance(actual, str):
        return _OPERATORS[op](actual, expected)
    return False


def normalize_predicate(predicate: Predicate) -> list[tuple[str, str, Any]]:
    """Flatten {field: value | {op: value}} into (field, op, value) triples.

    Raises:
        ValueError: On an unknown comparison operator.
    """
    clauses: list[tuple[str, str, Any]] = []
    for field_name, condition in predicate.items():
        if isinstance(condition, Mapping):
            for op, expected in condition.items():
                if op not in _OPERATORS:
                    raise ValueError(f"Unsupported operator {op!r} for field {field_name!r}")
                clauses.append((field_name, op, expected))
        else:
            clauses.append((field_name, "=", condition))
    return clauses


def matches(element: Any, clauses: list[tuple[str, str, Any]]) -> bool:
    for field_name, op, expected in clauses:
        found, actual, _ = _resolve(element, parse_path(field_name))
        if not found or not _compare(op, actual, expected):
            return False
    return True


def query_array(
    source: DerivedRepresentation | Mapping[str, Any],
    array_path: str,
    predicate: Predicate | None = None,
) -> list[Any]:
    """Elements of the array at array_path satisfying every predicate clause.

    Original order is kept. A missing path, or one that does not name an
    array, yields []. Type mismatches (e.g. "<" between a string and a
    number) simply do not match.
    """
    clauses = normalize_predicate(predicate or {})
    found, array, _ = _resolve(_tree(source), parse_path(array_path))
    if not found or not isinstance(array, list):
        return []
    return [copy.deepcopy(el) for el in array if matches(el, clauses)]


def predicate_shape(predicate: Predicate | None) -> str:
    """Canonical text form of a predicate, for cache keys."""
    return json.dumps(predicate or {}, sort_keys=True, separators=(",", ":"), default=str)


def parse_where(expressions: list[str]) -> dict[str, dict[str, Any]]:
    """Parse CLI filters of the form field:op:value, e.g. "price:<:10".

    Raises:
        ValueError: On malformed expressions or unknown operators.
    """
    predicate: dict[str, dict[str, Any]] = {}
    for expr in expressions:
        parts = expr.split(":", 2)
        if len(parts) != 3 or not parts[0]:
            raise ValueError(f"Invalid filter {expr!r}, expected field:op:value")
        field_name, op, raw = parts
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported operator {op!r} in {expr!r}")
        predicate.setdefault(field_name, {})[op] = coerce_cell(raw)
    return predicate
