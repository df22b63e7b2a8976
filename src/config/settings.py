# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings. Every field maps
to an upper-case environment variable of the same name (``DEBOUNCE_MS``,
``CACHE_BACKEND``, ...).
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Sources ===
    source_root: Path = Path(".")
    state_root: Path = Path(".ctxsync")
    source_extensions: str = ".md,.markdown,.txt"
    skip_dirs: str = ".git,node_modules,__pycache__"

    # === Change detection ===
    debounce_ms: int = 300
    poll_interval_s: float = 0.0
    read_max_attempts: int = 3
    read_base_delay_s: float = 0.05
    read_backoff_factor: float = 2.0

    # === Workers ===
    worker_count: int = 0
    event_queue_size: int = 1000
    conversion_wait_timeout_s: float = 2.0

    # === Registry ===
    registry_backend: Literal["json", "sqlite"] = "json"

    # === Cache ===
    cache_memory_max_entries: int = 1024
    cache_memory_ttl_s: float = 300.0
    cache_durable_enabled: bool = True
    cache_backend: Literal["json", "sqlite", "redis"] = "json"
    cache_durable_ttl_s: float = 86400.0
    cache_redis_url: str = ""

    # === Conversion ===
    orphan_grace_s: float = 604800.0
    schema_version: str = "1.0.0"
    critical_fields: str = "title,summary,key_points,properties"

    # === Loading & budget ===
    default_load_level: Literal[1, 2, 3, 4] = 2
    session_token_limit: int = 100_000
    budget_warning_threshold: float = 0.8
    level_multipliers: str = "0.05,0.15,0.35,1.0"
    section_mapping: str = "{}"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("debounce_ms", "worker_count", "read_max_attempts")
    @classmethod
    def validate_non_negative(cls, v: int, info) -> int:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @field_validator("event_queue_size")
    @classmethod
    def validate_queue_size(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("event_queue_size must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        try:
            multipliers = self.level_multipliers_list
        except ValueError:
            multipliers = []
        if len(multipliers) != 4 or any(m <= 0 for m in multipliers):
            errors.append("LEVEL_MULTIPLIERS must be four positive numbers")
        elif multipliers != sorted(multipliers):
            errors.append("LEVEL_MULTIPLIERS must be non-decreasing")

        if not 0 < self.budget_warning_threshold <= 1:
            errors.append("BUDGET_WARNING_THRESHOLD must be in (0, 1]")

        if self.session_token_limit < 0:
            errors.append("SESSION_TOKEN_LIMIT must be >= 0")

        if self.cache_backend == "redis" and self.cache_durable_enabled and not self.cache_redis_url:
            errors.append("CACHE_BACKEND=redis requires CACHE_REDIS_URL")

        try:
            self.section_mapping_dict
        except ValueError as e:
            errors.append(f"SECTION_MAPPING invalid: {e}")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def source_extensions_list(self) -> list[str]:
        """Parse comma-separated extensions, normalized to '.ext' lower case."""
        exts = []
        for e in self.source_extensions.split(","):
            e = e.strip().lower()
            if e:
                exts.append(e if e.startswith(".") else f".{e}")
        return exts

    @property
    def skip_dirs_list(self) -> list[str]:
        return [d.strip() for d in self.skip_dirs.split(",") if d.strip()]

    @property
    def critical_fields_list(self) -> list[str]:
        return [f.strip() for f in self.critical_fields.split(",") if f.strip()]

    @property
    def level_multipliers_list(self) -> list[float]:
        """Per-level cost multipliers, index 0 = level 1."""
        return [float(m) for m in self.level_multipliers.split(",") if m.strip()]

    @property
    def section_mapping_dict(self) -> dict[str, list[str]]:
        """Decode the category -> section keys mapping used by level-3 loads."""
        try:
            raw = json.loads(self.section_mapping or "{}")
        except json.JSONDecodeError as e:
            raise ValueError(f"not valid JSON ({e.msg})") from e
        if not isinstance(raw, dict):
            raise ValueError("must be a JSON object")
        for category, keys in raw.items():
            if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
                raise ValueError(f"category {category!r} must map to a list of strings")
        return raw

    @property
    def effective_worker_count(self) -> int:
        return self.worker_count or os.cpu_count() or 1

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000.0


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
