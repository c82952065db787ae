"""Tests for placing widget output into the document's slots."""

from unittest.mock import patch

import pytest

from dashbuilder.dashboard import count_rendered_slots, render_dashboard, write_dashboard
from dashbuilder.layout import LayoutError, parse_document
from dashbuilder.models import WidgetOutput


def _widgets(**overrides) -> dict[str, WidgetOutput]:
    widgets = {
        "map": WidgetOutput(name="map", html="<div id='widget-map'></div>", uses_plotly=True),
        "table": WidgetOutput(name="table", html="<table class='display'></table><script type='module'>new DataTable('#dt');</script>"),
        "histogram": WidgetOutput(name="histogram", html="<div id='widget-histogram'></div>", uses_plotly=True),
    }
    widgets.update(overrides)
    return widgets


class TestRenderDashboard:
    """Full-page assembly."""

    def test_slot_count_matches_document(self, document_text):
        document = parse_document(document_text)

        html = render_dashboard(document, _widgets())

        assert count_rendered_slots(html) == len(document.slots) == 3

    def test_widgets_land_in_their_slots(self, document_text):
        document = parse_document(document_text)

        html = render_dashboard(document, _widgets())

        map_slot = html.index("data-widget='map'")
        assert map_slot < html.index("widget-map") < html.index("data-widget='table'")
        assert "<h3>Exposure map</h3>" in html
        assert "<p class='caption'>Grey means no data.</p>" in html
        assert "<title>PM2.5 exposure</title>" in html
        assert "Test build" in html

    def test_section_sizes_become_flex_weights(self, document_text):
        html = render_dashboard(parse_document(document_text), _widgets())

        assert "flex: 650 1 0" in html
        assert "flex: 350 1 0" in html

    def test_unused_widgets_are_not_rendered(self):
        document = parse_document("---\ntitle: T\n---\n### Only {widget=table}\n")

        html = render_dashboard(document, _widgets())

        assert count_rendered_slots(html) == 1
        assert "widget-map" not in html
        assert "cdn.plot.ly" not in html

    def test_unknown_widget_raises(self):
        document = parse_document("---\ntitle: T\n---\n### Box {widget=scatter}\n")

        with pytest.raises(LayoutError, match="unknown widget 'scatter'"):
            render_dashboard(document, _widgets())

    def test_widget_in_two_slots_raises(self):
        document = parse_document("---\ntitle: T\n---\n### A {widget=map}\n### B {widget=map}\n")

        with pytest.raises(LayoutError, match="more than one slot"):
            render_dashboard(document, _widgets())

    def test_widget_html_is_placed_verbatim(self, document_text):
        html = render_dashboard(parse_document(document_text), _widgets())

        assert html.count("new DataTable('#dt');") == 1
        table_slot = html.index("data-widget='table'")
        assert table_slot < html.index("<table class='display'>") < html.index("data-widget='histogram'")

    @patch("plotly.offline.get_plotlyjs_version", return_value="2.35.2")
    def test_plotly_loaded_from_cdn(self, _mock_version, document_text):
        html = render_dashboard(parse_document(document_text), _widgets())

        assert html.count("https://cdn.plot.ly/plotly-2.35.2.min.js") == 1
        assert html.index("cdn.plot.ly") < html.index("</head>")

    @patch("plotly.offline.get_plotlyjs", return_value="/* plotly bundle */")
    def test_self_contained_inlines_plotly(self, _mock_js):
        text = (
            "---\ntitle: T\noutput:\n  self_contained: true\n---\n"
            "### Map {widget=map}\n"
        )

        html = render_dashboard(parse_document(text), _widgets())

        assert "/* plotly bundle */" in html
        assert "cdn.plot.ly" not in html

    def test_title_is_escaped(self):
        document = parse_document('---\ntitle: "A <b>bold</b> title"\n---\n### A {widget=table}\n')

        html = render_dashboard(document, _widgets())

        assert "A &lt;b&gt;bold&lt;/b&gt; title" in html


class TestWriteDashboard:
    def test_creates_parent_directories(self, tmp_path):
        out = tmp_path / "build" / "nested" / "dashboard.html"

        written = write_dashboard("<html></html>", out)

        assert written == out
        assert out.read_text(encoding="utf-8") == "<html></html>"
