# tests/integration/config/test_int_settings.py — v2
"""Integration tests for configuration loading.

Tests Settings with real .env files, validation rules, and the engine
picking up what the file configures.
No external services required.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ctxsync.api.engine import ContextEngine
from ctxsync.config.settings import ConfigurationError, Settings
from tests.conftest import API_MD


class TestSettingsLoading:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.registry_backend == "json"
        assert settings.cache_backend == "json"
        assert settings.default_load_level == 2

    def test_from_env_file(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            f"SOURCE_ROOT={tmp_path / 'docs'}\n"
            f"STATE_ROOT={tmp_path / 'state'}\n"
            "DEBOUNCE_MS=120\n"
            "REGISTRY_BACKEND=sqlite\n"
            "CACHE_BACKEND=sqlite\n"
            "SESSION_TOKEN_LIMIT=5000\n"
            "LEVEL_MULTIPLIERS=0.1,0.2,0.5,1.0\n"
            'SECTION_MAPPING={"specs": ["Endpoints"]}\n'
            "UNRELATED_VARIABLE=ignored\n"
        )
        settings = Settings(_env_file=str(env_file))
        assert settings.source_root == tmp_path / "docs"
        assert settings.debounce_s == pytest.approx(0.12)
        assert settings.registry_backend == "sqlite"
        assert settings.level_multipliers_list == [0.1, 0.2, 0.5, 1.0]
        assert settings.section_mapping_dict == {"specs": ["Endpoints"]}

    def test_invalid_env_file_reports_every_problem(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "LEVEL_MULTIPLIERS=1.0,0.5,0.2,0.1\n"
            "BUDGET_WARNING_THRESHOLD=1.5\n"
            "CACHE_BACKEND=redis\n"
        )
        with pytest.raises(ConfigurationError) as exc_info:
            Settings(_env_file=str(env_file))
        message = str(exc_info.value)
        assert "LEVEL_MULTIPLIERS must be non-decreasing" in message
        assert "BUDGET_WARNING_THRESHOLD" in message
        assert "CACHE_REDIS_URL" in message


class TestEngineUsesSettings:

    @pytest.mark.asyncio
    async def test_env_configured_engine(self, tmp_path: Path):
        docs = tmp_path / "docs" / "specs"
        docs.mkdir(parents=True)
        (docs / "api.md").write_text(API_MD, encoding="utf-8")
        env_file = tmp_path / ".env"
        env_file.write_text(
            f"SOURCE_ROOT={tmp_path / 'docs'}\n"
            f"STATE_ROOT={tmp_path / 'state'}\n"
            "REGISTRY_BACKEND=sqlite\n"
            "CACHE_BACKEND=sqlite\n"
            "SESSION_TOKEN_LIMIT=5000\n"
            "DEFAULT_LOAD_LEVEL=3\n"
            f"SECTION_MAPPING={json.dumps({'specs': ['Endpoints']})}\n"
        )
        settings = Settings(_env_file=str(env_file))
        async with ContextEngine(settings) as engine:
            await engine.scan_once()
            result = await engine.load_context("specs/api.md")
            assert result.level == 3
            assert list(result.data["raw_sections"]) == ["endpoints"]
            assert engine.allocator.ledger("default").limit == 5000
        assert (tmp_path / "state" / "registry.db").is_file()
        assert (tmp_path / "state" / "cache" / "cache.db").is_file()
