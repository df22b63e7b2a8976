# src/detection/retry.py — v1
"""Source reads with exponential backoff.

A read that keeps failing raises SourceUnreadable; a file that is simply gone
is not an error here, the caller treats it as a deletion.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ctxsync.core.errors import SourceUnreadable
from ctxsync.core.models import SourceDocument
from ctxsync.detection.fingerprint import compute_fingerprint

if TYPE_CHECKING:
    from ctxsync.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for source reads."""

    max_attempts: int = 3
    base_delay_s: float = 0.05
    backoff_factor: float = 2.0
    jitter: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryConfig:
        return cls(
            max_attempts=max(1, settings.read_max_attempts),
            base_delay_s=settings.read_base_delay_s,
            backoff_factor=settings.read_backoff_factor,
        )


def _compute_delay(config: RetryConfig, attempt: int) -> float:
    """Compute delay for a given attempt (0-based)."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay


def _read_once(path: Path) -> tuple[bytes, datetime]:
    raw = path.read_bytes()
    mtime = path.stat().st_mtime
    return raw, datetime.fromtimestamp(mtime, timezone.utc)


async def read_source(
    path: Path,
    document_id: str,
    config: RetryConfig | None = None,
) -> SourceDocument | None:
    """Read a source document, retrying transient I/O failures.

    Returns:
        The SourceDocument, or None if the file no longer exists.

    Raises:
        SourceUnreadable: If every attempt failed.
    """
    config = config or RetryConfig()
    attempts = 0

    while True:
        try:
            raw, modified_at = await asyncio.to_thread(_read_once, path)
        except FileNotFoundError:
            return None
        except OSError as e:
            attempts += 1
            if attempts >= config.max_attempts:
                raise SourceUnreadable(document_id, attempts, e) from e

            delay = _compute_delay(config, attempts - 1)
            logger.warning(
                "Read of %s failed (attempt %d/%d), retrying in %.2fs: %s",
                document_id, attempts, config.max_attempts, delay, e,
            )
            await asyncio.sleep(delay)
            continue

        return SourceDocument(
            document_id=document_id,
            path=path,
            content=raw,
            fingerprint=compute_fingerprint(raw),
            modified_at=modified_at,
        )
