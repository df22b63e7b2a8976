# tests/unit/config/test_settings.py — v1
"""Tests for config/settings.py — typed Settings and validation rules."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from ctxsync.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_default_paths(self):
        s = Settings(_env_file=None)
        assert s.source_root == Path(".")
        assert s.state_root == Path(".ctxsync")

    def test_default_detection(self):
        s = Settings(_env_file=None)
        assert s.debounce_ms == 300
        assert s.debounce_s == pytest.approx(0.3)
        assert s.read_max_attempts == 3

    def test_default_cache(self):
        s = Settings(_env_file=None)
        assert s.cache_backend == "json"
        assert s.cache_memory_ttl_s == 300
        assert s.cache_durable_enabled is True

    def test_default_budget(self):
        s = Settings(_env_file=None)
        assert s.session_token_limit == 100_000
        assert s.budget_warning_threshold == 0.8
        assert s.default_load_level == 2

    def test_worker_count_zero_uses_cpu_count(self):
        s = Settings(_env_file=None, worker_count=0)
        assert s.effective_worker_count == (os.cpu_count() or 1)

    def test_explicit_worker_count(self):
        s = Settings(_env_file=None, worker_count=3)
        assert s.effective_worker_count == 3


class TestSettingsValidation:
    def test_negative_debounce(self):
        with pytest.raises(ValueError, match="debounce_ms"):
            Settings(_env_file=None, debounce_ms=-1)

    def test_zero_queue_size(self):
        with pytest.raises(ValueError, match="event_queue_size"):
            Settings(_env_file=None, event_queue_size=0)

    def test_multipliers_wrong_count(self):
        with pytest.raises(ConfigurationError, match="LEVEL_MULTIPLIERS"):
            Settings(_env_file=None, level_multipliers="0.1,0.2,1.0")

    def test_multipliers_decreasing(self):
        with pytest.raises(ConfigurationError, match="non-decreasing"):
            Settings(_env_file=None, level_multipliers="0.5,0.2,0.3,1.0")

    def test_multipliers_not_numbers(self):
        with pytest.raises(ConfigurationError, match="LEVEL_MULTIPLIERS"):
            Settings(_env_file=None, level_multipliers="a,b,c,d")

    def test_threshold_out_of_range(self):
        with pytest.raises(ConfigurationError, match="BUDGET_WARNING_THRESHOLD"):
            Settings(_env_file=None, budget_warning_threshold=1.5)

    def test_redis_requires_url(self):
        with pytest.raises(ConfigurationError, match="CACHE_REDIS_URL"):
            Settings(_env_file=None, cache_backend="redis")

    def test_redis_with_url(self):
        s = Settings(_env_file=None, cache_backend="redis", cache_redis_url="redis://localhost")
        assert s.cache_backend == "redis"

    def test_section_mapping_not_json(self):
        with pytest.raises(ConfigurationError, match="SECTION_MAPPING"):
            Settings(_env_file=None, section_mapping="{not json")

    def test_section_mapping_wrong_shape(self):
        with pytest.raises(ConfigurationError, match="SECTION_MAPPING"):
            Settings(_env_file=None, section_mapping='{"planning": "overview"}')

    def test_errors_are_joined(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings(
                _env_file=None,
                budget_warning_threshold=0,
                level_multipliers="1",
            )
        assert "; " in str(exc_info.value)


class TestSettingsHelpers:
    def test_source_extensions_normalized(self):
        s = Settings(_env_file=None, source_extensions="md, .TXT,,rst")
        assert s.source_extensions_list == [".md", ".txt", ".rst"]

    def test_critical_fields_list(self):
        s = Settings(_env_file=None, critical_fields="title, summary")
        assert s.critical_fields_list == ["title", "summary"]

    def test_level_multipliers_list(self):
        s = Settings(_env_file=None)
        assert s.level_multipliers_list == [0.05, 0.15, 0.35, 1.0]

    def test_section_mapping_dict(self):
        s = Settings(_env_file=None, section_mapping='{"planning": ["overview", "scope"]}')
        assert s.section_mapping_dict == {"planning": ["overview", "scope"]}


class TestLoadSettings:
    def test_overrides(self):
        s = load_settings(_env_file=None, debounce_ms=50)
        assert s.debounce_ms == 50

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv("SESSION_TOKEN_LIMIT", "5000")
        s = load_settings(_env_file=None)
        assert s.session_token_limit == 5000
