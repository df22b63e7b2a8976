# tests/unit/logging/test_log_handlers.py — v1
"""Tests for logging/handlers.py — file rotation handler."""

from __future__ import annotations

import pytest

from ctxsync.logging.handlers import create_rotating_handler, parse_size


class TestParseSize:
    def test_mb(self):
        assert parse_size("10MB") == 10 * 1024 * 1024

    def test_kb(self):
        assert parse_size("512KB") == 512 * 1024

    def test_bytes(self):
        assert parse_size("100B") == 100

    def test_case_insensitive(self):
        assert parse_size("10mb") == 10 * 1024 * 1024

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid size"):
            parse_size("10bytes")

    def test_empty_string(self):
        with pytest.raises(ValueError):
            parse_size("")


class TestCreateRotatingHandler:
    def test_creates_handler(self, tmp_path):
        handler = create_rotating_handler(tmp_path / "test.log", rotation="1MB", retention=5)
        assert handler.maxBytes == 1024 * 1024
        assert handler.backupCount == 5
        handler.close()

    def test_creates_parent_dirs(self, tmp_path):
        handler = create_rotating_handler(str(tmp_path / "subdir" / "deep" / "test.log"))
        assert (tmp_path / "subdir" / "deep").exists()
        handler.close()
