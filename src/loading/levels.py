# src/loading/levels.py — v1
"""Views of a representation at each fidelity level.

Each level's view contains the previous level's view unchanged:

    1  summary + critical fields
    2  the full structured data
    3  level 2 + "raw_sections" for the consumer category's section list
    4  level 3 (or 2) + "raw_source", the full source text

Without a section list, level 3 is the level 2 view and reports level 2.
"""

from __future__ import annotations

import copy
from typing import Any

from ctxsync.core.models import (
    LEVEL_FULL,
    LEVEL_SECTIONS,
    LEVEL_STRUCTURED,
    LEVEL_SUMMARY,
    DerivedRepresentation,
    LoadLevel,
)

RAW_SECTIONS_KEY = "raw_sections"
RAW_SOURCE_KEY = "raw_source"


def summary_view(rep: DerivedRepresentation) -> dict[str, Any]:
    view: dict[str, Any] = {"summary": rep.summary}
    for name in rep.critical_fields():
        if name in rep.data and name not in view:
            view[name] = copy.deepcopy(rep.data[name])
    return view


def build_view(
    rep: DerivedRepresentation,
    level: LoadLevel,
    section_keys: list[str] | None = None,
) -> tuple[LoadLevel, dict[str, Any]]:
    """Return (effective level, data) for a requested level.

    Args:
        rep: The snapshot to view.
        level: Requested level, 1-4.
        section_keys: Anchors of the raw sections level 3 adds, or None when
            the consumer category has no mapping.
    """
    if level == LEVEL_SUMMARY:
        return LEVEL_SUMMARY, summary_view(rep)

    view = copy.deepcopy(rep.data)
    effective: LoadLevel = LEVEL_STRUCTURED
    if level >= LEVEL_SECTIONS and section_keys is not None:
        sections = rep.content.sections
        view[RAW_SECTIONS_KEY] = {k: sections[k] for k in section_keys if k in sections}
        effective = LEVEL_SECTIONS
    if level == LEVEL_FULL:
        view[RAW_SOURCE_KEY] = rep.content.source_text
        effective = LEVEL_FULL
    return effective, view
