"""Dashboard document parsing: YAML header block plus section/slot headings."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Mapping

import yaml

from .models import DashboardDocument, DocumentHeader, LayoutSection, LayoutSlot

_FENCE_RE = re.compile(r"^---\s*$")
_UNDERLINE_RE = re.compile(r"^-{3,}\s*$")
_PAGE_UNDERLINE_RE = re.compile(r"^={3,}\s*$")
_ATTRS_RE = re.compile(r"\{([^{}]*)\}\s*$")
_SIZE_KEYS = ("data-width", "data-height", "width", "height")

_LOGGER = logging.getLogger("dashbuilder.layout")


class LayoutError(ValueError):
    """Raised for malformed dashboard documents."""


def load_document(path: Path) -> DashboardDocument:
    if not path.exists():
        raise FileNotFoundError(f"Dashboard document not found: {path}")
    return parse_document(path.read_text(encoding="utf-8"))


def parse_document(text: str) -> DashboardDocument:
    """Parse a dashboard document.

    The header is YAML between two `---` fences. In the body, `## Title {data-width=650}`
    (or a title underlined with dashes) opens a column/row section and
    `### Title {widget=map}` declares a slot; plain text under a slot becomes its
    caption. A slot that appears before any section opens an untitled one.
    """
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    header, body_start = _split_header(lines)

    sections: list[tuple[str | None, int | None, list[LayoutSlot]]] = []
    slot_title: str | None = None
    slot_widget: str | None = None
    caption: list[str] = []

    def flush_slot() -> None:
        nonlocal slot_title, slot_widget, caption
        if slot_title is None or slot_widget is None:
            return
        if not sections:
            sections.append((None, None, []))
        sections[-1][2].append(
            LayoutSlot(title=slot_title, widget=slot_widget, caption=_join_caption(caption))
        )
        slot_title, slot_widget, caption = None, None, []

    idx = body_start
    while idx < len(lines):
        line = lines[idx]
        stripped = line.strip()
        next_line = lines[idx + 1] if idx + 1 < len(lines) else ""

        if stripped.startswith("# ") or (stripped and _PAGE_UNDERLINE_RE.match(next_line)):
            raise LayoutError(f"Multi-page documents are not supported (line {idx + 1})")

        section_title: str | None = None
        if stripped.startswith("## "):
            section_title = stripped[3:]
        elif stripped and not stripped.startswith("#") and _UNDERLINE_RE.match(next_line):
            section_title = stripped
            idx += 1

        if section_title is not None:
            flush_slot()
            title, attrs = _split_attrs(section_title, line_no=idx + 1)
            sections.append((title or None, _size_from_attrs(attrs, line_no=idx + 1), []))
        elif stripped.startswith("### "):
            flush_slot()
            title, attrs = _split_attrs(stripped[4:], line_no=idx + 1)
            widget = attrs.get("widget", "").strip()
            if not widget:
                raise LayoutError(f"Slot '{title}' does not declare a widget (line {idx + 1})")
            slot_title, slot_widget = title, widget
        elif slot_title is not None:
            caption.append(stripped)
        elif stripped:
            _LOGGER.debug("Ignoring text outside a slot at line %d", idx + 1)
        idx += 1
    flush_slot()

    built: list[LayoutSection] = []
    for title, size, slots in sections:
        if not slots:
            _LOGGER.warning("Dropping section '%s' because it declares no slots", title or "")
            continue
        built.append(LayoutSection(title=title, size=size, slots=tuple(slots)))
    if not built:
        raise LayoutError("Dashboard document declares no widget slots")
    return DashboardDocument(header=header, sections=tuple(built))


def _split_header(lines: list[str]) -> tuple[DocumentHeader, int]:
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    if start >= len(lines) or not _FENCE_RE.match(lines[start]):
        raise LayoutError("Dashboard document must start with a '---' header block")
    for end in range(start + 1, len(lines)):
        if _FENCE_RE.match(lines[end]):
            break
    else:
        raise LayoutError("Header block is not closed with '---'")

    try:
        raw = yaml.safe_load("\n".join(lines[start + 1 : end]))
    except yaml.YAMLError as exc:
        raise LayoutError(f"Invalid YAML in header block: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise LayoutError("Header block must be a YAML mapping")
    try:
        header = DocumentHeader.from_mapping(raw)
    except ValueError as exc:
        raise LayoutError(f"Invalid header block: {exc}") from exc
    return header, end + 1


def _split_attrs(text: str, *, line_no: int) -> tuple[str, dict[str, str]]:
    match = _ATTRS_RE.search(text)
    if match is None:
        return text.strip(), {}
    attrs: dict[str, str] = {}
    for token in match.group(1).split():
        if "=" not in token:
            raise LayoutError(f"Malformed attribute '{token}' (line {line_no})")
        key, value = token.split("=", 1)
        attrs[key.strip().casefold()] = value.strip().strip("'\"")
    return text[: match.start()].strip(), attrs


def _size_from_attrs(attrs: Mapping[str, Any], *, line_no: int) -> int | None:
    for key in _SIZE_KEYS:
        raw = attrs.get(key)
        if raw is None:
            continue
        try:
            size = int(str(raw).removesuffix("px"))
        except ValueError as exc:
            raise LayoutError(f"Invalid {key} '{raw}' (line {line_no})") from exc
        if size <= 0:
            raise LayoutError(f"{key} must be positive (line {line_no})")
        return size
    return None


def _join_caption(lines: list[str]) -> str:
    paragraphs: list[str] = []
    current: list[str] = []
    for line in lines:
        if line:
            current.append(line)
        elif current:
            paragraphs.append(" ".join(current))
            current = []
    if current:
        paragraphs.append(" ".join(current))
    return "\n\n".join(paragraphs)
