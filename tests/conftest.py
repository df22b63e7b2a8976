# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides isolated settings, sample source documents and a document writer
rooted in tmp_path. No network access; Redis is always mocked.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from ctxsync.config.settings import Settings
from ctxsync.core.models import SourceDocument
from ctxsync.detection.fingerprint import compute_fingerprint

COMPETITORS_MD = """\
---
title: Competitor Landscape
owner: market-team
---
# Competitor Landscape

## Overview

We track the main competitors in the budget segment and their monthly pricing.

## Competitors

| Name | Price | Region |
|------|-------|--------|
| Alpha | 8 | EU |
| Beta | 12.5 | US |
| Gamma | 9 | EU |

## Notes

- Prices are monthly list prices in EUR.
- **Reviewed**: 2026-01-15
"""

API_MD = """\
# API Specification

## Overview

The public API exposes read-only endpoints for catalog and pricing data.

## Endpoints

- GET /catalog returns every product in the catalog.
- GET /pricing returns current list prices.

## Authentication

All requests carry a bearer token issued by the identity service.

## Changelog

Version 2 removed the legacy XML format.
"""


FIXED_MTIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def source_root(tmp_path: Path) -> Path:
    root = tmp_path / "docs"
    root.mkdir()
    return root


@pytest.fixture
def make_settings(source_root: Path, tmp_path: Path) -> Callable[..., Settings]:
    """Settings factory that never reads .env or the process environment's file."""

    def _make(**overrides) -> Settings:
        values = dict(
            source_root=source_root,
            state_root=tmp_path / "state",
            debounce_ms=0,
            worker_count=2,
            cache_backend="json",
            read_base_delay_s=0.0,
            conversion_wait_timeout_s=1.0,
        )
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def write_doc(source_root: Path) -> Callable[[str, str], Path]:
    """Write a source document under the source root, creating directories."""

    def _write(document_id: str, text: str) -> Path:
        path = source_root.joinpath(*document_id.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_source(tmp_path: Path) -> Callable[..., SourceDocument]:
    """Build an in-memory SourceDocument without touching the filesystem."""

    def _make(document_id: str = "market/competitors.md", text: str = COMPETITORS_MD,
              modified_at: datetime = FIXED_MTIME) -> SourceDocument:
        raw = text.encode("utf-8")
        return SourceDocument(
            document_id=document_id,
            path=tmp_path / document_id,
            content=raw,
            fingerprint=compute_fingerprint(raw),
            modified_at=modified_at,
        )

    return _make


@pytest.fixture
def competitors_source(make_source) -> SourceDocument:
    return make_source()


@pytest.fixture
def api_source(make_source) -> SourceDocument:
    return make_source("specs/api.md", API_MD)
