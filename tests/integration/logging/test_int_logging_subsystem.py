# tests/integration/logging/test_int_logging_subsystem.py — v2
"""Integration tests for the logging subsystem.

Covers: logging/logger.py, logging/handlers.py, logging/context.py as
exercised by a running engine writing to a rotating JSON log file.
No Docker required.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from ctxsync.api.engine import ContextEngine
from ctxsync.logging.logger import setup_logging
from tests.conftest import API_MD


@pytest.fixture
def log_file(tmp_path: Path):
    path = tmp_path / "logs" / "ctxsync.log"
    setup_logging(level="DEBUG", log_format="json", log_file=path, rotation="1MB", retention=2)
    yield path
    root = logging.getLogger("ctxsync")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


def _records(path: Path) -> list[dict]:
    for handler in logging.getLogger("ctxsync").handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


class TestEngineLogging:

    @pytest.mark.asyncio
    async def test_sync_transitions_logged_with_document_context(self, settings, write_doc, log_file):
        write_doc("specs/api.md", API_MD)
        async with ContextEngine(settings) as engine:
            await engine.scan_once()
        records = _records(log_file)
        transitions = [
            r for r in records
            if r["logger"] == "ctxsync.registry.sync_registry" and r.get("data", {}).get("status")
        ]
        assert [r["data"]["status"] for r in transitions] == ["outdated", "synced"]
        for r in transitions:
            assert r["level"] == "INFO"
            assert r["context"] == {"document_id": "specs/api.md", "operation": "convert"}

    @pytest.mark.asyncio
    async def test_over_budget_warning_carries_consumer(self, settings, write_doc, log_file):
        write_doc("specs/api.md", API_MD)
        async with ContextEngine(settings) as engine:
            await engine.scan_once()
            await engine.load_context("specs/api.md", budget=0, consumer_id="planner")
        warnings = [r for r in _records(log_file) if r["message"].startswith("Over-budget delivery")]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["context"]["consumer_id"] == "planner"
        assert warnings[0]["context"]["operation"] == "load"

    @pytest.mark.asyncio
    async def test_schema_violation_logged_as_warning(self, settings, write_doc, log_file):
        write_doc("broken.md", "---\ntitle: [unclosed\n---\n# Broken\n")
        async with ContextEngine(settings) as engine:
            await engine.scan_once()
        failures = [r for r in _records(log_file) if r["message"].startswith("Conversion of broken.md failed")]
        assert len(failures) == 1
        assert failures[0]["level"] == "WARNING"
        assert "front matter" in failures[0]["message"]


class TestAlertLogging:

    @pytest.mark.asyncio
    async def test_registry_corruption_is_critical(self, settings, write_doc, log_file):
        write_doc("a.md", "# A\n\nBody.\n")
        async with ContextEngine(settings) as engine:
            await engine.scan_once()
        (settings.state_root / "registry.json").write_text("[1, 2", encoding="utf-8")
        async with ContextEngine(settings) as engine:
            assert engine.get_sync_status("a.md") == "synced"
        alerts = [r for r in _records(log_file) if r["logger"] == "ctxsync.alerts"]
        assert len(alerts) == 1
        assert alerts[0]["level"] == "CRITICAL"
        assert alerts[0]["data"]["alert"] == "registry_corruption"


class TestTextFormat:

    def test_text_lines_include_context(self, tmp_path):
        from ctxsync.logging.context import log_context

        path = tmp_path / "text.log"
        setup_logging(level="INFO", log_format="text", log_file=path)
        try:
            logger = logging.getLogger("ctxsync.test")
            with log_context(document_id="a.md", consumer_id="planner", operation="load"):
                logger.info("served")
            for handler in logging.getLogger("ctxsync").handlers:
                handler.flush()
            line = path.read_text(encoding="utf-8").strip().splitlines()[-1]
            assert "(load) [a.md] <planner> - served" in line
            assert "[INFO    ]" in line
        finally:
            root = logging.getLogger("ctxsync")
            for handler in list(root.handlers):
                root.removeHandler(handler)
                handler.close()
