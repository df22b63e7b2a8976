# tests/unit/loading/test_levels.py — v1
"""Tests for loading/levels.py and loading/section_mapping.py."""

from __future__ import annotations

import pytest

from ctxsync.conversion.converter import convert
from ctxsync.loading.levels import RAW_SECTIONS_KEY, RAW_SOURCE_KEY, build_view
from ctxsync.loading.section_mapping import StaticSectionMapping


@pytest.fixture
def rep(api_source):
    return convert(api_source).representation


def _contains(outer: dict, inner: dict) -> bool:
    return all(k in outer and outer[k] == v for k, v in inner.items())


class TestBuildView:
    def test_level_one_is_summary_and_critical_fields(self, rep):
        level, view = build_view(rep, 1)
        assert level == 1
        assert set(view) == {"summary", "title", "key_points", "properties"}
        assert "sections" not in view

    def test_level_two_is_full_structure(self, rep):
        level, view = build_view(rep, 2)
        assert level == 2
        assert view == rep.data

    def test_level_three_without_mapping_reports_two(self, rep):
        assert build_view(rep, 3, None) == build_view(rep, 2)

    def test_level_three_adds_mapped_sections(self, rep):
        level, view = build_view(rep, 3, ["endpoints", "missing-section"])
        assert level == 3
        assert list(view[RAW_SECTIONS_KEY]) == ["endpoints"]
        assert view[RAW_SECTIONS_KEY]["endpoints"].startswith("## Endpoints")

    def test_level_four_adds_source(self, rep):
        level, view = build_view(rep, 4, None)
        assert level == 4
        assert view[RAW_SOURCE_KEY] == rep.content.source_text
        assert RAW_SECTIONS_KEY not in view

    def test_each_level_contains_the_previous(self, rep):
        views = [build_view(rep, lvl, ["authentication"])[1] for lvl in (1, 2, 3, 4)]
        for lower, higher in zip(views, views[1:]):
            assert _contains(higher, lower)

    def test_views_do_not_alias_representation(self, rep):
        _, view = build_view(rep, 2)
        view["title"] = "changed"
        view["key_points"].append("x")
        assert rep.data["title"] != "changed"
        assert "x" not in rep.data["key_points"]


class TestStaticSectionMapping:
    def test_titles_normalized_to_anchors(self):
        mapping = StaticSectionMapping({"specs": ["Endpoints", "api-reference"]})
        assert mapping.sections_for("specs") == ["endpoints", "api-reference"]

    def test_unmapped_category(self):
        assert StaticSectionMapping().sections_for("anything") is None

    def test_from_settings(self, make_settings):
        settings = make_settings(section_mapping='{"market": ["Competitors"], "specs": []}')
        mapping = StaticSectionMapping.from_settings(settings)
        assert mapping.categories() == ["market", "specs"]
        assert mapping.sections_for("specs") == []
