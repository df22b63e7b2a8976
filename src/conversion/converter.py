# src/conversion/converter.py — v1
"""Converter — source document to derived representation.

convert() is a pure function of the SourceDocument: the same input always
yields the same representation, byte for byte once serialized. Timestamps in
the metadata block come from the source's modification time, never the clock.
Failures are returned, not raised, so callers can keep the last good data.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ctxsync.conversion.structure_detector import (
    StructureError,
    build_section_tree,
    detect_headings,
    estimate_tokens,
    extract_properties,
    normalize_key,
    section_text,
    split_front_matter,
)
from ctxsync.conversion.table_extractor import extract_tables
from ctxsync.core.errors import SchemaViolation
from ctxsync.core.models import (
    DerivedRepresentation,
    FieldTag,
    RepresentationMeta,
    SectionedContent,
    SourceDocument,
)
from ctxsync.detection.fingerprint import category_for

if TYPE_CHECKING:
    from ctxsync.config.settings import Settings

logger = logging.getLogger(__name__)

SUMMARY_MAX_CHARS = 300
SUMMARY_HEADINGS = ("overview", "summary", "introduction")
KEY_POINT_LIMIT = 15
RESERVED_KEYS = frozenset(
    {
        "title", "summary", "key_points", "properties", "sections", "document_type",
        "raw_sections", "raw_source",
    }
)

# filename hints first, then content hints; first match wins
_NAME_TYPES = (
    ("guide", "guide"),
    ("template", "template"),
    ("checklist", "checklist"),
    ("reference", "reference"),
    ("config", "configuration"),
    ("setup", "setup"),
    ("installation", "setup"),
    ("troubleshoot", "troubleshooting"),
    ("migration", "migration"),
    ("example", "example"),
)
_CONTENT_TYPES = (
    (("## Configuration", "## Setup"), "configuration"),
    (("## Troubleshooting", "### Error"), "troubleshooting"),
    (("## Workflow", "## Process"), "guide"),
)


@dataclass(frozen=True)
class ConversionResult:
    """Either a representation or the reason there is none."""

    representation: DerivedRepresentation | None = None
    error: SchemaViolation | None = None

    @property
    def ok(self) -> bool:
        return self.representation is not None


def classify_document(document_id: str, text: str) -> str:
    name = PurePosixPath(document_id).stem.lower()
    for hint, doc_type in _NAME_TYPES:
        if hint in name:
            return doc_type
    for markers, doc_type in _CONTENT_TYPES:
        if any(m in text for m in markers):
            return doc_type
    return "documentation"


def _paragraph_after(lines: list[str], start: int) -> str:
    parts: list[str] = []
    for line in lines[start:]:
        stripped = line.strip()
        if not stripped:
            if parts:
                break
            continue
        if stripped.startswith("#"):
            break
        parts.append(stripped)
        if len(" ".join(parts)) > SUMMARY_MAX_CHARS:
            break
    return " ".join(parts)[:SUMMARY_MAX_CHARS]


def extract_summary(lines: list[str], headings, fallback: str) -> str:
    """First paragraph of an Overview/Summary/Introduction section, else the
    first substantial line, else the fallback."""
    for heading in headings:
        if heading.key in SUMMARY_HEADINGS:
            paragraph = _paragraph_after(lines, heading.line_no + 1)
            if paragraph:
                return paragraph
    for line in lines:
        stripped = line.strip()
        if stripped and not stripped.startswith(("#", "|")) and len(stripped) > 50:
            return stripped[:SUMMARY_MAX_CHARS]
    return fallback[:SUMMARY_MAX_CHARS]


def extract_key_points(lines: list[str]) -> list[str]:
    points: list[str] = []
    for line in lines:
        stripped = line.strip()
        if stripped.startswith(("- ", "* ")) and 10 < len(stripped) < 200:
            points.append(stripped[2:].strip())
            if len(points) >= KEY_POINT_LIMIT:
                break
    return points


def _json_safe(value: Any) -> Any:
    """Plain JSON data from parsed YAML: dates become strings, mapping keys too.

    YAML allows int, date and null keys; JSON does not, and mixed key types
    cannot be sorted.
    """
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return json.loads(json.dumps(value, default=str))


class Converter:
    """Turn SourceDocuments into DerivedRepresentations."""

    def __init__(
        self,
        schema_version: str = "1.0.0",
        critical_fields: list[str] | None = None,
    ) -> None:
        self._schema_version = schema_version
        self._critical = list(
            critical_fields if critical_fields is not None
            else ["title", "summary", "key_points", "properties"]
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Converter:
        return cls(settings.schema_version, settings.critical_fields_list)

    def convert(self, source: SourceDocument) -> ConversionResult:
        """Convert one source. Never raises for content problems."""
        try:
            representation = self._build(source)
        except SchemaViolation as e:
            return ConversionResult(error=e)
        except StructureError as e:
            return ConversionResult(error=SchemaViolation(source.document_id, str(e)))
        except ValidationError as e:
            return ConversionResult(
                error=SchemaViolation(source.document_id, f"invalid representation: {e}")
            )
        except (TypeError, ValueError) as e:
            return ConversionResult(
                error=SchemaViolation(source.document_id, f"unrepresentable content: {e}")
            )
        logger.debug(
            "Converted %s: %d fields, %d sections",
            source.document_id, len(representation.fields),
            len(representation.content.sections),
        )
        return ConversionResult(representation=representation)

    def raw_view(self, source: SourceDocument) -> DerivedRepresentation:
        """Summary-level representation read straight from the source text.

        Serves documents that have no derived file yet. Undecodable bytes
        and broken front matter are tolerated rather than reported.
        """
        text = source.content.decode("utf-8", errors="replace").replace("\r\n", "\n")
        try:
            _, body, _ = split_front_matter(text)
        except StructureError:
            body = text
        lines = body.split("\n")
        headings = detect_headings(lines)
        title = ""
        if headings:
            title = next((h for h in headings if h.level == 1), headings[0]).title
        title = title or PurePosixPath(source.document_id).stem
        data: dict[str, Any] = {
            "title": title,
            "summary": extract_summary(lines, headings, title),
        }
        critical = set(self._critical)
        return DerivedRepresentation(
            meta=RepresentationMeta(
                document_id=source.document_id,
                source_file=source.document_id,
                category=category_for(source.document_id),
                schema_version=self._schema_version,
                generated_at=source.modified_at,
                source_fingerprint=source.fingerprint,
                last_synced=source.modified_at,
                sync_status="outdated",
                byte_size=source.size_bytes,
                estimated_tokens=estimate_tokens(text),
            ),
            summary=data["summary"],
            fields=[FieldTag(name=name, critical=name in critical) for name in data],
            data=data,
            content=SectionedContent(source_text=text),
        )

    def _build(self, source: SourceDocument) -> DerivedRepresentation:
        doc_id = source.document_id
        try:
            text = source.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SchemaViolation(doc_id, f"not valid UTF-8 at byte {e.start}") from e
        text = text.replace("\r\n", "\n")
        if not text.strip():
            raise SchemaViolation(doc_id, "document is empty")

        front_matter, body, _ = split_front_matter(text)
        lines = body.split("\n")
        headings = detect_headings(lines)

        title = str(front_matter.get("title") or "")
        if not title and headings:
            title = next((h for h in headings if h.level == 1), headings[0]).title
        title = title or PurePosixPath(doc_id).stem

        properties = _json_safe({normalize_key(str(k)): v for k, v in front_matter.items()})
        for key, value in extract_properties(lines).items():
            properties.setdefault(key, value)

        data: dict[str, Any] = {
            "title": title,
            "summary": extract_summary(lines, headings, title),
            "key_points": extract_key_points(lines),
            "properties": properties,
            "sections": build_section_tree(lines, headings),
            "document_type": classify_document(doc_id, body),
        }
        self._add_tables(data, lines, headings)

        critical = set(self._critical)
        fields = [FieldTag(name=name, critical=name in critical) for name in data]

        meta = RepresentationMeta(
            document_id=doc_id,
            source_file=doc_id,
            category=category_for(doc_id),
            schema_version=self._schema_version,
            document_type=data["document_type"],
            generated_at=source.modified_at,
            source_fingerprint=source.fingerprint,
            last_synced=source.modified_at,
            sync_status="synced",
            byte_size=source.size_bytes,
            estimated_tokens=estimate_tokens(text),
        )
        return DerivedRepresentation(
            meta=meta,
            summary=data["summary"],
            fields=fields,
            data=data,
            content=SectionedContent(
                source_text=text,
                sections={h.anchor: section_text(lines, h) for h in headings},
            ),
        )

    @staticmethod
    def _add_tables(data: dict[str, Any], lines: list[str], headings) -> None:
        """Place each table under its enclosing section's key at the top level."""
        for table in extract_tables(lines):
            owner = None
            for heading in headings:
                if heading.line_no < table.line_no < heading.end_line:
                    owner = heading  # innermost wins, headings are in order
            base = owner.key if owner else "table"
            if base in RESERVED_KEYS:
                base = f"table_{base}"
            key, n = base, 2
            while key in data:
                key = f"{base}_{n}"
                n += 1
            data[key] = table.rows


def convert(source: SourceDocument, converter: Converter | None = None) -> ConversionResult:
    """Module-level shortcut with default schema version and critical fields."""
    return (converter or Converter()).convert(source)
