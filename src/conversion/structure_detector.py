# src/conversion/structure_detector.py — v1
"""Detect document structure: front matter, headings, section spans, property lines.

Markdown ATX headings only ("# Title" ... "###### Title"); lines inside fenced
code blocks are never headings.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

import yaml

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
FENCE_RE = re.compile(r"^\s*(```|~~~)")
PROPERTY_RE = re.compile(r"^\s*[-*]\s+\*\*(.+?)\*\*\s*:\s*(.+?)\s*$")
FRONT_MATTER_DELIM = "---"


class StructureError(ValueError):
    """Source text has a structure that cannot be represented."""


@dataclass(frozen=True)
class Heading:
    """One heading line and the span of lines it owns."""

    title: str
    level: int
    line_no: int
    anchor: str
    key: str
    end_line: int = 0


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def create_anchor(title: str) -> str:
    """GitHub-style anchor: lower case, punctuation dropped, spaces to dashes."""
    anchor = re.sub(r"[^a-z0-9\s-]", "", title.lower())
    return re.sub(r"\s+", "-", anchor.strip())


def normalize_key(title: str) -> str:
    """Field-name form of a heading or column title."""
    key = re.sub(r"[^a-z0-9]+", "_", title.lower()).strip("_")
    return key or "section"


def split_front_matter(text: str) -> tuple[dict, str, int]:
    """Split leading YAML front matter from the body.

    Returns:
        (front matter mapping, body text, number of lines consumed).

    Raises:
        StructureError: Unclosed block, invalid YAML, or a non-mapping block.
    """
    lines = text.split("\n")
    if not lines or lines[0].strip() != FRONT_MATTER_DELIM:
        return {}, text, 0

    for i in range(1, len(lines)):
        if lines[i].strip() == FRONT_MATTER_DELIM:
            block = "\n".join(lines[1:i])
            try:
                data = yaml.safe_load(block) if block.strip() else {}
            except yaml.YAMLError as e:
                raise StructureError(f"invalid front matter: {e}") from e
            if not isinstance(data, dict):
                raise StructureError("front matter must be a mapping")
            return data, "\n".join(lines[i + 1:]), i + 1

    raise StructureError("front matter block is not closed")


def detect_headings(lines: list[str]) -> list[Heading]:
    """Find headings and the line span each one owns.

    A heading's span runs to the next heading of the same or higher level
    (or the end of the text). Anchors are made unique with -1, -2 suffixes.
    """
    found: list[tuple[str, int, int]] = []
    in_fence = False
    for i, line in enumerate(lines):
        if FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = HEADING_RE.match(line)
        if match:
            found.append((match.group(2).strip(), len(match.group(1)), i))

    headings: list[Heading] = []
    seen: dict[str, int] = {}
    for idx, (title, level, line_no) in enumerate(found):
        end = len(lines)
        for later_title, later_level, later_line in found[idx + 1:]:
            if later_level <= level:
                end = later_line
                break
        anchor = create_anchor(title) or "section"
        if anchor in seen:
            seen[anchor] += 1
            anchor = f"{anchor}-{seen[anchor]}"
        else:
            seen[anchor] = 0
        headings.append(
            Heading(
                title=title,
                level=level,
                line_no=line_no,
                anchor=anchor,
                key=normalize_key(title),
                end_line=end,
            )
        )
    return headings


def section_text(lines: list[str], heading: Heading) -> str:
    """Raw text of a section, heading line included."""
    return "\n".join(lines[heading.line_no:heading.end_line]).strip("\n")


def _preview(lines: list[str], heading: Heading, limit: int = 150) -> str:
    body: list[str] = []
    for line in lines[heading.line_no + 1:heading.end_line]:
        stripped = line.strip()
        if HEADING_RE.match(stripped):
            break
        if stripped:
            body.append(stripped)
        if len(body) == 3:
            break
    return " ".join(body)[:limit]


def build_section_tree(lines: list[str], headings: list[Heading]) -> dict[str, dict]:
    """Nest headings into {key: {title, level, anchor, tokens, preview, subsections}}.

    A lone level-1 heading is the document title, its children become the top
    level. Duplicate sibling keys get _2, _3 suffixes.
    """
    if sum(1 for h in headings if h.level == 1) == 1 and headings[0].level == 1:
        headings = headings[1:]

    root: dict[str, dict] = {}
    stack: list[tuple[int, dict[str, dict]]] = [(0, root)]
    for heading in headings:
        while len(stack) > 1 and stack[-1][0] >= heading.level:
            stack.pop()
        siblings = stack[-1][1]
        key = heading.key
        n = 2
        while key in siblings:
            key = f"{heading.key}_{n}"
            n += 1
        node = {
            "title": heading.title,
            "level": heading.level,
            "anchor": heading.anchor,
            "tokens": estimate_tokens(section_text(lines, heading)),
            "preview": _preview(lines, heading),
            "subsections": {},
        }
        siblings[key] = node
        stack.append((heading.level, node["subsections"]))
    return root


def extract_properties(lines: list[str]) -> dict[str, str]:
    """Collect `- **Key**: value` lines; the first occurrence of a key wins."""
    props: dict[str, str] = {}
    for line in lines:
        match = PROPERTY_RE.match(line)
        if match:
            props.setdefault(normalize_key(match.group(1)), match.group(2))
    return props
