# tests/integration/conftest.py — v1
"""Shared fixtures for integration tests.

Integration tests run the real engine end to end on tmp_path: real
filesystem, real watchdog observer, real JSON/SQLite stores. No Docker and
no network; Redis is never required here.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable

import pytest

INTEGRATION_ROOT = Path(__file__).parent


def pytest_collection_modifyitems(config, items):
    for item in items:
        if INTEGRATION_ROOT in Path(str(item.fspath)).parents:
            item.add_marker(pytest.mark.integration)


WORDS = (
    "pricing catalog release budget segment review roadmap customer "
    "latency storage region partner contract support onboarding metric"
).split()


def prose(n_words: int, seed: int = 0) -> str:
    """Deterministic filler prose of n_words words, wrapped in short lines."""
    words = [WORDS[(i * 7 + seed) % len(WORDS)] for i in range(n_words)]
    lines = [" ".join(words[i:i + 12]) for i in range(0, len(words), 12)]
    return "\n".join(lines)


def report_md(title: str, n_words: int = 500, seed: int = 0) -> str:
    return (
        f"# {title}\n\n"
        "## Summary\n\n"
        f"Quarterly report on {title.lower()} with the main findings.\n\n"
        "## Findings\n\n"
        "- Revenue grew in every region this quarter.\n"
        "- Support backlog shrank by a third since January.\n\n"
        "## Details\n\n"
        f"{prose(n_words, seed)}\n"
    )


FIVE_COMPETITORS_MD = """\
# Competitors

## Overview

Competitor price points for the budget segment.

## Competitors

| Name | Price | Region |
|------|-------|--------|
| Alpha | 12 | EU |
| Beta | 8 | US |
| Gamma | 15 | EU |
| Delta | 9.5 | APAC |
| Epsilon | 10 | US |
"""


async def wait_until(
    condition: Callable[[], bool | Awaitable[bool]],
    timeout: float = 5.0,
    interval: float = 0.05,
) -> bool:
    """Poll condition until it holds or timeout elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = condition()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return True
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(interval)
