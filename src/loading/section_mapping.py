# src/loading/section_mapping.py — v1
"""Consumer-category section lists used by level-3 loads."""

from __future__ import annotations

from typing import Mapping, Protocol

from ctxsync.config.settings import Settings
from ctxsync.conversion.structure_detector import create_anchor


class SectionResolver(Protocol):
    """Pluggable lookup of the raw sections a consumer category wants."""

    def sections_for(self, category: str) -> list[str] | None:
        """Anchors for category, or None when the category has no mapping."""


class StaticSectionMapping:
    """Fixed category -> section list mapping.

    Entries may be anchors ("api-reference") or heading titles
    ("API Reference"); both are normalized to anchors.
    """

    def __init__(self, mapping: Mapping[str, list[str]] | None = None) -> None:
        self._mapping = {
            category: [create_anchor(s) for s in sections]
            for category, sections in (mapping or {}).items()
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> StaticSectionMapping:
        return cls(settings.section_mapping_dict)

    def sections_for(self, category: str) -> list[str] | None:
        sections = self._mapping.get(category)
        return list(sections) if sections is not None else None

    def categories(self) -> list[str]:
        return sorted(self._mapping)
