"""Tests for dashboard document parsing."""

import pytest

from dashbuilder.layout import LayoutError, load_document, parse_document


class TestHeader:
    """YAML header block handling."""

    def test_header_fields(self, document_text):
        document = parse_document(document_text)

        assert document.header.title == "PM2.5 exposure"
        assert document.header.subtitle == "Test build"
        assert document.header.orientation == "columns"
        assert document.header.output_format == "html"
        assert document.header.vertical_layout == "fill"
        assert document.header.self_contained is False

    def test_output_as_plain_string(self):
        document = parse_document('---\ntitle: T\noutput: html\n---\n### A {widget=map}\n')

        assert document.header.output_format == "html"

    def test_missing_header_raises(self):
        with pytest.raises(LayoutError, match="header block"):
            parse_document("### A {widget=map}\n")

    def test_unclosed_header_raises(self):
        with pytest.raises(LayoutError, match="not closed"):
            parse_document("---\ntitle: T\n### A {widget=map}\n")

    def test_header_must_be_mapping(self):
        with pytest.raises(LayoutError, match="mapping"):
            parse_document("---\n- a\n- b\n---\n### A {widget=map}\n")

    def test_header_requires_title(self):
        with pytest.raises(LayoutError, match="title"):
            parse_document("---\nsubtitle: x\n---\n### A {widget=map}\n")

    def test_non_html_format_rejected(self):
        with pytest.raises(LayoutError, match="only 'html'"):
            parse_document("---\ntitle: T\noutput:\n  format: pdf\n---\n### A {widget=map}\n")

    def test_bad_orientation_rejected(self):
        with pytest.raises(LayoutError, match="orientation"):
            parse_document(
                "---\ntitle: T\noutput:\n  orientation: diagonal\n---\n### A {widget=map}\n"
            )


class TestBody:
    """Sections, slots, and captions."""

    def test_sections_and_slots(self, document_text):
        document = parse_document(document_text)

        assert [section.title for section in document.sections] == ["Column", "Column"]
        assert [section.size for section in document.sections] == [650, 350]
        assert [slot.title for slot in document.slots] == ["Exposure map", "Values", "Distribution"]
        assert document.widget_names == ("map", "table", "histogram")

    def test_caption_attached_to_slot(self, document_text):
        document = parse_document(document_text)

        assert document.slots[0].caption == "Grey means no data."
        assert document.slots[1].caption == ""

    def test_atx_section_headings(self):
        text = (
            "---\ntitle: T\noutput:\n  orientation: rows\n---\n"
            "## Top {data-height=400}\n\n### Map {widget=map}\n\n"
            "## Bottom\n\n### Table {widget=table}\nFirst line\nsecond line\n\nAnother paragraph\n"
        )

        document = parse_document(text)

        assert document.header.orientation == "rows"
        assert [section.size for section in document.sections] == [400, None]
        assert document.slots[1].caption == "First line second line\n\nAnother paragraph"

    def test_slot_before_any_section_opens_one(self):
        document = parse_document("---\ntitle: T\n---\n\n### Only {widget=histogram}\n")

        assert len(document.sections) == 1
        assert document.sections[0].title is None
        assert document.widget_names == ("histogram",)

    def test_empty_section_dropped(self):
        text = "---\ntitle: T\n---\n## Empty\n\n## Full\n### A {widget=map}\n"

        document = parse_document(text)

        assert [section.title for section in document.sections] == ["Full"]

    def test_slot_without_widget_raises(self):
        with pytest.raises(LayoutError, match="does not declare a widget"):
            parse_document("---\ntitle: T\n---\n### Lonely box\n")

    def test_no_slots_raises(self):
        with pytest.raises(LayoutError, match="no widget slots"):
            parse_document("---\ntitle: T\n---\n## Column\n\nJust prose.\n")

    def test_pages_rejected(self):
        with pytest.raises(LayoutError, match="Multi-page"):
            parse_document("---\ntitle: T\n---\n# Page one\n### A {widget=map}\n")

    def test_malformed_attribute_raises(self):
        with pytest.raises(LayoutError, match="Malformed attribute"):
            parse_document("---\ntitle: T\n---\n### A {widget}\n")

    def test_bad_size_raises(self):
        with pytest.raises(LayoutError, match="data-width"):
            parse_document("---\ntitle: T\n---\n## C {data-width=wide}\n### A {widget=map}\n")


class TestLoadDocument:
    def test_reads_file(self, tmp_path, document_text):
        path = tmp_path / "doc.dash.md"
        path.write_text(document_text, encoding="utf-8")

        assert len(load_document(path).slots) == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_document(tmp_path / "nope.dash.md")
