# src/conversion/table_extractor.py — v1
"""Markdown table extraction into arrays of row objects.

Header cells become field names, numeric cells become numbers. A table is a
contiguous block of `|` lines whose second line is a separator row.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from ctxsync.conversion.structure_detector import StructureError, normalize_key

_SEPARATOR_RE = re.compile(r"^\|(\s*:?-+:?\s*\|)+$")
_NUMBER_RE = re.compile(r"^-?(\d+|\d{1,3}(,\d{3})+)(\.\d+)?$")


@dataclass(frozen=True)
class ExtractedTable:
    """A parsed table and the line it starts on."""

    line_no: int
    columns: list[str]
    rows: list[dict[str, Any]]


def _is_table_line(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith("|") and stripped.endswith("|") and len(stripped) > 1


def _split_row(line: str) -> list[str]:
    inner = line.strip()[1:-1]
    cells = re.split(r"(?<!\\)\|", inner)
    return [c.strip().replace("\\|", "|") for c in cells]


def coerce_cell(value: str) -> Any:
    """Turn plain integers and decimals into numbers, leave the rest as text."""
    if not _NUMBER_RE.match(value):
        return value
    compact = value.replace(",", "")
    return float(compact) if "." in compact else int(compact)


def _column_names(header: list[str]) -> list[str]:
    names: list[str] = []
    for i, cell in enumerate(header):
        base = normalize_key(cell) if cell else f"column_{i + 1}"
        name, n = base, 2
        while name in names:
            name = f"{base}_{n}"
            n += 1
        names.append(name)
    return names


def extract_tables(lines: list[str]) -> list[ExtractedTable]:
    """Extract every Markdown table in document order.

    Raises:
        StructureError: A body row has more cells than the header.
    """
    tables: list[ExtractedTable] = []
    in_fence = False
    i = 0
    while i < len(lines):
        if lines[i].lstrip().startswith(("```", "~~~")):
            in_fence = not in_fence
            i += 1
            continue
        if in_fence or not _is_table_line(lines[i]):
            i += 1
            continue

        j = i
        while j < len(lines) and _is_table_line(lines[j]):
            j += 1
        block = lines[i:j]
        if len(block) >= 2 and _SEPARATOR_RE.match(block[1].strip()):
            columns = _column_names(_split_row(block[0]))
            rows: list[dict[str, Any]] = []
            for offset, line in enumerate(block[2:], start=2):
                cells = _split_row(line)
                if len(cells) > len(columns):
                    raise StructureError(
                        f"table row at line {i + offset + 1} has {len(cells)} cells, "
                        f"header has {len(columns)}"
                    )
                cells += [""] * (len(columns) - len(cells))
                rows.append({col: coerce_cell(cell) for col, cell in zip(columns, cells)})
            tables.append(ExtractedTable(line_no=i, columns=columns, rows=rows))
        i = j
    return tables
