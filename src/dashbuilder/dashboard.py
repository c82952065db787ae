"""HTML assembly: place widget fragments into the slots declared by a dashboard document."""

from __future__ import annotations

import re
from html import escape
from pathlib import Path
from typing import Mapping

import plotly.offline

from .layout import LayoutError
from .models import DashboardDocument, LayoutSection, LayoutSlot, WidgetOutput

_SLOT_RE = re.compile(r"<section class='slot'")


def render_dashboard(document: DashboardDocument, widgets: Mapping[str, WidgetOutput]) -> str:
    """Return a full HTML page with one slot element per declared slot."""
    _check_widget_references(document, widgets)
    header = document.header

    section_html = [
        _render_section(section, widgets, orientation=header.orientation)
        for section in document.sections
    ]

    used = [widgets[name] for name in document.widget_names]
    head_scripts: list[str] = []
    if any(widget.uses_plotly for widget in used):
        head_scripts.append(_plotly_script_tag(self_contained=header.self_contained))

    flow = "row" if header.orientation == "columns" else "column"
    inner_flow = "column" if header.orientation == "columns" else "row"
    height = "100vh" if header.vertical_layout == "fill" else "auto"
    subtitle = (
        f"    <span class='subtitle'>{escape(header.subtitle)}</span>" if header.subtitle else ""
    )

    html = "\n".join(
        [
            "<!doctype html>",
            "<html lang='en'>",
            "<head>",
            "  <meta charset='utf-8'>",
            "  <meta name='viewport' content='width=device-width, initial-scale=1'>",
            f"  <title>{escape(header.title)}</title>",
            *head_scripts,
            "  <style>",
            "    * { box-sizing: border-box; }",
            f"    html, body {{ margin: 0; height: {height}; font-family: Arial, sans-serif; }}",
            "    body { display: flex; flex-direction: column; background: #f4f5f7; }",
            "    .navbar { background: #2c3e50; color: #fff; padding: 10px 16px; }",
            "    .navbar h1 { display: inline; margin: 0 12px 0 0; font-size: 18px; }",
            "    .navbar .subtitle { font-size: 14px; color: #cfd8dc; }",
            f"    .sections {{ flex: 1; display: flex; flex-direction: {flow}; gap: 8px; "
            "padding: 8px; min-height: 0; }",
            f"    .section {{ display: flex; flex-direction: {inner_flow}; gap: 8px; min-width: 0; "
            "min-height: 0; }",
            "    .slot { flex: 1; display: flex; flex-direction: column; background: #fff; "
            "border: 1px solid #ddd; border-radius: 4px; min-height: 0; min-width: 0; }",
            "    .slot h3 { margin: 0; padding: 8px 12px; font-size: 15px; "
            "border-bottom: 1px solid #eee; }",
            "    .slot .body { flex: 1; overflow: auto; padding: 6px; min-height: 240px; }",
            "    .slot .caption { margin: 0; padding: 4px 12px 8px; font-size: 12px; color: #555; }",
            "  </style>",
            "</head>",
            "<body>",
            "  <div class='navbar'>",
            f"    <h1>{escape(header.title)}</h1>",
            subtitle,
            "  </div>",
            f"  <div class='sections {escape(header.orientation)}'>",
            *section_html,
            "  </div>",
            "</body>",
            "</html>",
            "",
        ]
    )
    return html


def write_dashboard(html: str, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(html, encoding="utf-8")
    return output_path


def count_rendered_slots(html: str) -> int:
    return len(_SLOT_RE.findall(html))


def _check_widget_references(
    document: DashboardDocument, widgets: Mapping[str, WidgetOutput]
) -> None:
    seen: set[str] = set()
    for slot in document.slots:
        if slot.widget not in widgets:
            known = ", ".join(sorted(widgets)) or "none"
            raise LayoutError(f"Slot '{slot.title}' references unknown widget '{slot.widget}' (known: {known})")
        if slot.widget in seen:
            raise LayoutError(f"Widget '{slot.widget}' is placed in more than one slot")
        seen.add(slot.widget)


def _render_section(
    section: LayoutSection,
    widgets: Mapping[str, WidgetOutput],
    *,
    orientation: str,
) -> str:
    style = ""
    if section.size is not None:
        style = f" style='flex: {section.size} 1 0'"
    elif orientation == "columns":
        style = " style='flex: 1 1 0'"
    title_attr = f" data-title='{escape(section.title)}'" if section.title else ""
    parts = [f"    <div class='section'{title_attr}{style}>"]
    parts.extend(_render_slot(slot, widgets[slot.widget]) for slot in section.slots)
    parts.append("    </div>")
    return "\n".join(parts)


def _render_slot(slot: LayoutSlot, widget: WidgetOutput) -> str:
    caption = ""
    if slot.caption:
        caption = "\n".join(
            f"      <p class='caption'>{escape(paragraph)}</p>"
            for paragraph in slot.caption.split("\n\n")
        )
    return "\n".join(
        part
        for part in (
            f"    <section class='slot' data-widget='{escape(slot.widget)}'>",
            f"      <h3>{escape(slot.title)}</h3>",
            "      <div class='body'>",
            widget.html,
            "      </div>",
            caption,
            "    </section>",
        )
        if part
    )


def _plotly_script_tag(*, self_contained: bool) -> str:
    if self_contained:
        return f"  <script type='text/javascript'>{plotly.offline.get_plotlyjs()}</script>"
    version = plotly.offline.get_plotlyjs_version()
    return f"  <script src='https://cdn.plot.ly/plotly-{version}.min.js' charset='utf-8'></script>"
