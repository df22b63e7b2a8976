# src/core/alerts.py — v1
"""Operator-visible alert channel.

The engine escalates exactly two conditions: registry corruption and source
reads that stayed failed after every retry. Everything else degrades locally.
Deployments inject their own channel (pager, dashboard webhook, ...); the
default one only logs.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger("ctxsync.alerts")


class AlertChannel(Protocol):
    """Receives escalated conditions."""

    def registry_corrupted(self, path: str, reason: str) -> None: ...

    def source_unreadable(self, document_id: str, attempts: int, error: str) -> None: ...


class LoggingAlertChannel:
    """Default channel: write alerts to the `ctxsync.alerts` logger."""

    def registry_corrupted(self, path: str, reason: str) -> None:
        logger.critical(
            "Registry corrupted at %s (%s); rebuilding from sources",
            path, reason,
            extra={"data": {"alert": "registry_corruption", "path": path}},
        )

    def source_unreadable(self, document_id: str, attempts: int, error: str) -> None:
        logger.error(
            "Source %s unreadable after %d attempts: %s",
            document_id, attempts, error,
            extra={"data": {"alert": "source_unreadable", "document_id": document_id}},
        )


class RecordingAlertChannel:
    """Channel that keeps alerts in memory, for embedding applications and tests."""

    def __init__(self) -> None:
        self.alerts: list[dict[str, Any]] = []

    def registry_corrupted(self, path: str, reason: str) -> None:
        self.alerts.append({"kind": "registry_corruption", "path": path, "reason": reason})

    def source_unreadable(self, document_id: str, attempts: int, error: str) -> None:
        self.alerts.append(
            {
                "kind": "source_unreadable",
                "document_id": document_id,
                "attempts": attempts,
                "error": error,
            }
        )
