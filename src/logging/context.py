# src/logging/context.py — v1
"""Contextual logging support — attach document_id, consumer_id, operation to log records."""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

# Context variables for structured logging — set per sync or load operation.
_document_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "document_id", default=None
)
_consumer_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "consumer_id", default=None
)
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    document_id: str | None = None
    consumer_id: str | None = None
    operation: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        document_id=_document_id.get(),
        consumer_id=_consumer_id.get(),
        operation=_operation.get(),
    )


@contextmanager
def log_context(
    document_id: str | None = None,
    consumer_id: str | None = None,
    operation: str | None = None,
) -> Iterator[None]:
    """Scope context variables to a block, restoring previous values on exit."""
    tokens = []
    if document_id is not None:
        tokens.append((_document_id, _document_id.set(document_id)))
    if consumer_id is not None:
        tokens.append((_consumer_id, _consumer_id.set(consumer_id)))
    if operation is not None:
        tokens.append((_operation, _operation.set(operation)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def clear_context() -> None:
    """Reset all context variables."""
    _document_id.set(None)
    _consumer_id.set(None)
    _operation.set(None)
