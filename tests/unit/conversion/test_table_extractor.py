# tests/unit/conversion/test_table_extractor.py — v1
"""Tests for conversion/table_extractor.py."""

from __future__ import annotations

import pytest

from ctxsync.conversion.structure_detector import StructureError
from ctxsync.conversion.table_extractor import coerce_cell, extract_tables


class TestCoerceCell:
    @pytest.mark.parametrize(
        "raw,expected",
        [("8", 8), ("-3", -3), ("12.5", 12.5), ("1,200", 1200), ("1,200.75", 1200.75)],
    )
    def test_numbers(self, raw, expected):
        assert coerce_cell(raw) == expected

    @pytest.mark.parametrize("raw", ["EU", "v2", "1.2.3", "12,00", "", "10%"])
    def test_text_kept(self, raw):
        assert coerce_cell(raw) == raw


class TestExtractTables:
    def test_rows_as_objects(self):
        lines = [
            "| Name | Unit Price | Name |",
            "|:-----|-----------:|------|",
            "| Alpha | 8 | a |",
            "| Beta | 12.5 |",
        ]
        (table,) = extract_tables(lines)
        assert table.line_no == 0
        assert table.columns == ["name", "unit_price", "name_2"]
        assert table.rows == [
            {"name": "Alpha", "unit_price": 8, "name_2": "a"},
            {"name": "Beta", "unit_price": 12.5, "name_2": ""},
        ]

    def test_escaped_pipe(self):
        lines = ["| Expr |", "|---|", r"| a \| b |"]
        assert extract_tables(lines)[0].rows == [{"expr": "a | b"}]

    def test_block_without_separator_is_not_a_table(self):
        assert extract_tables(["| a | b |", "| c | d |"]) == []

    def test_tables_in_fences_ignored(self):
        lines = ["```", "| a |", "|---|", "| 1 |", "```"]
        assert extract_tables(lines) == []

    def test_multiple_tables_in_order(self):
        lines = ["| a |", "|---|", "| 1 |", "", "text", "| b |", "|---|", "| 2 |"]
        tables = extract_tables(lines)
        assert [t.line_no for t in tables] == [0, 5]
        assert tables[1].rows == [{"b": 2}]

    def test_row_wider_than_header(self):
        lines = ["| a |", "|---|", "| 1 | 2 |"]
        with pytest.raises(StructureError, match="line 3"):
            extract_tables(lines)
