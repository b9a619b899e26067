"""Tests for output synthesis, the preview variant and verify_output."""

import datetime as dt

import fitz
import pytest

from pdf_autofill.errors import SynthesisError
from pdf_autofill.handlers.acroform_indexer import extract_widgets
from pdf_autofill.handlers.choice_indexer import extract_choices
from pdf_autofill.handlers.pdf_verifier import verify_output
from pdf_autofill.handlers.pdf_writer import (
    build_download_filename,
    fit_font_size,
    synthesize,
    synthesize_preview,
)
from pdf_autofill.handlers.placeholder_indexer import extract_fields
from pdf_autofill.loader import TemplateDocument, template_from_bytes
from pdf_autofill.models import ContentStatus, FillMode, OffsetCorrection, SourceRecord
from pdf_autofill.resolver import FieldResolver

TODAY = dt.date(2026, 10, 18)
BLACK = (0.0, 0.0, 0.0)


@pytest.fixture
def resolver(config) -> FieldResolver:
    return FieldResolver(config)


def _placeholder_fill(data: bytes, resolver: FieldResolver, record: SourceRecord):
    template = template_from_bytes(data)
    fields = extract_fields(template, resolver)
    resolver.fill(fields, record)
    choices = extract_choices(template, resolver, record)
    return template, fields, choices


def _acroform_fill(data: bytes, resolver: FieldResolver, record: SourceRecord):
    template = template_from_bytes(data)
    fields = extract_widgets(template, resolver)
    resolver.fill(fields, record)
    return template, fields


def _page_text(data: bytes, page: int = 0) -> str:
    doc = fitz.open(stream=data, filetype="pdf")
    text = doc[page].get_text()
    doc.close()
    return text


def _black_marks(data: bytes) -> list:
    doc = fitz.open(stream=data, filetype="pdf")
    marks = [d for d in doc[0].get_drawings() if d.get("fill") == BLACK]
    doc.close()
    return marks


# ── Placeholder mode ─────────────────────────────────────────────────────────


class TestPlaceholderSynthesis:
    def test_values_drawn_and_tokens_removed(
        self, placeholder_pdf: bytes, resolver, record
    ) -> None:
        template, fields, choices = _placeholder_fill(placeholder_pdf, resolver, record)
        out = synthesize(template, fields, choices, FillMode.PLACEHOLDER)

        text = _page_text(out)
        assert "Ada" in text
        assert "Lovelace" in text
        assert "04/02/1990" in text
        assert "{" not in text

    def test_round_trip_verifies(self, placeholder_pdf: bytes, resolver, record) -> None:
        template, fields, choices = _placeholder_fill(placeholder_pdf, resolver, record)
        out = synthesize(template, fields, choices, FillMode.PLACEHOLDER)

        report = verify_output(out, fields)

        assert report.summary.total == 5
        assert report.summary.matched == 5
        assert report.summary.mismatched == 0

    def test_round_trip_with_offset(self, placeholder_pdf: bytes, resolver, record) -> None:
        template, fields, choices = _placeholder_fill(placeholder_pdf, resolver, record)
        offset = OffsetCorrection(dx=3, dy=-4)
        out = synthesize(template, fields, choices, FillMode.PLACEHOLDER, offset=offset)

        report = verify_output(out, fields, offset)

        assert report.summary.matched == report.summary.total

    def test_edited_value_is_what_gets_drawn(
        self, placeholder_pdf: bytes, resolver, record
    ) -> None:
        template, fields, choices = _placeholder_fill(placeholder_pdf, resolver, record)
        first = next(f for f in fields if f.name == "{firstName}")
        first.current_value = "Augusta"

        out = synthesize(template, fields, choices, FillMode.PLACEHOLDER)

        assert "Augusta" in _page_text(out)
        assert "Ada" not in _page_text(out)

    def test_template_bytes_untouched(self, placeholder_pdf: bytes, resolver, record) -> None:
        template, fields, choices = _placeholder_fill(placeholder_pdf, resolver, record)
        synthesize(template, fields, choices, FillMode.PLACEHOLDER)
        synthesize(template, fields, choices, FillMode.PLACEHOLDER)
        assert template.duplicate() == placeholder_pdf

    def test_neighbouring_lines_survive(self, resolver, record) -> None:
        doc = fitz.open()
        page = doc.new_page(width=612, height=792)
        page.insert_text(fitz.Point(50, 86), "Line above kept", fontsize=12)
        page.insert_text(fitz.Point(50, 100), "Name:{firstName}Next", fontsize=12)
        page.insert_text(fitz.Point(50, 114), "Line below kept", fontsize=12)
        page.draw_line(fitz.Point(40, 97), fitz.Point(300, 97))
        data = doc.tobytes()
        doc.close()

        template, fields, choices = _placeholder_fill(data, resolver, record)
        out = synthesize(template, fields, choices, FillMode.PLACEHOLDER)

        text = _page_text(out)
        assert "Line above kept" in text
        assert "Line below kept" in text
        assert "Name:" in text
        assert "Next" in text
        assert "Ada" in text
        assert "{" not in text

        result = fitz.open(stream=out, filetype="pdf")
        rules = [d for d in result[0].get_drawings() if d["rect"].width > 200]
        result.close()
        assert len(rules) == 1

    def test_selected_options_get_a_filled_mark(
        self, radio_pdf: bytes, resolver, record
    ) -> None:
        template, fields, choices = _placeholder_fill(radio_pdf, resolver, record)
        out = synthesize(template, fields, choices, FillMode.PLACEHOLDER)

        selected = sum(1 for g in choices if g.selected_option is not None)
        assert selected == 3
        assert len(_black_marks(out)) == selected

    def test_mark_radius_has_a_minimum(self, radio_pdf: bytes, resolver, record) -> None:
        template, fields, choices = _placeholder_fill(radio_pdf, resolver, record)
        out = synthesize(template, fields, choices, FillMode.PLACEHOLDER)

        for mark in _black_marks(out):
            assert mark["rect"].width == pytest.approx(8, abs=0.5)

    def test_no_selection_no_marks(self, radio_pdf: bytes, resolver) -> None:
        template, fields, choices = _placeholder_fill(radio_pdf, resolver, SourceRecord())
        out = synthesize(template, fields, choices, FillMode.PLACEHOLDER)
        assert _black_marks(out) == []
        assert "{radio" not in _page_text(out)

    def test_unreadable_template_raises(self, resolver) -> None:
        broken = TemplateDocument(b"%PDF-1.7 broken")
        with pytest.raises(SynthesisError):
            synthesize(broken, [], [], FillMode.PLACEHOLDER)


# ── AcroForm mode ────────────────────────────────────────────────────────────


class TestAcroFormSynthesis:
    def test_output_is_flattened(self, acroform_pdf: bytes, resolver, record) -> None:
        template, fields = _acroform_fill(acroform_pdf, resolver, record)
        out = synthesize(template, fields, [], FillMode.ACROFORM)

        doc = fitz.open(stream=out, filetype="pdf")
        assert list(doc[0].widgets()) == []
        doc.close()

    def test_round_trip_verifies(self, acroform_pdf: bytes, resolver, record) -> None:
        template, fields = _acroform_fill(acroform_pdf, resolver, record)
        out = synthesize(template, fields, [], FillMode.ACROFORM)

        report = verify_output(out, fields)

        by_key = {r.key: r for r in report.content_results}
        assert by_key["F1"].status == ContentStatus.MATCHED
        assert by_key["F1"].expected == "Ada"
        assert by_key["F3"].expected == "04/02/1990"
        assert report.summary.mismatched == 0

    def test_unbound_widget_value_blanked(self, acroform_pdf: bytes, resolver, record) -> None:
        template, fields = _acroform_fill(acroform_pdf, resolver, record)
        color = next(f for f in fields if f.name == "favorite_color")
        assert color.binding is None
        assert color.current_value == ""

        out = synthesize(template, fields, [], FillMode.ACROFORM)

        text = _page_text(out)
        assert "Ada" in text
        assert "Blue" not in text

    def test_preview_keeps_live_fields(self, acroform_pdf: bytes, resolver, record) -> None:
        template, fields = _acroform_fill(acroform_pdf, resolver, record)
        preview = synthesize_preview(template, fields, [], FillMode.ACROFORM)

        editable = fitz.open(stream=preview.editable, filetype="pdf")
        values = {w.field_name: w.field_value for w in editable[0].widgets()}
        editable.close()
        assert values["first_name"] == "Ada"

        display = fitz.open(stream=preview.display, filetype="pdf")
        assert list(display[0].widgets()) == []
        display.close()

    def test_placeholder_preview_copies_match(
        self, placeholder_pdf: bytes, resolver, record
    ) -> None:
        template, fields, choices = _placeholder_fill(placeholder_pdf, resolver, record)
        preview = synthesize_preview(template, fields, choices, FillMode.PLACEHOLDER)
        assert preview.editable == preview.display


# ── Helpers ──────────────────────────────────────────────────────────────────


class TestDownloadFilename:
    def test_format(self, record) -> None:
        assert build_download_filename(record, today=TODAY) == (
            "Ada_Lovelace_Physician_Recommendation_10-18-2026.pdf"
        )

    def test_missing_first_name(self) -> None:
        assert build_download_filename(SourceRecord(), today=TODAY) == (
            "Patient__Physician_Recommendation_10-18-2026.pdf"
        )

    def test_unsafe_characters_replaced(self) -> None:
        record = SourceRecord(subject={"firstName": "Mary Ann", "lastName": "O'Neil"})
        assert build_download_filename(record, "ESA Letter", TODAY) == (
            "Mary_Ann_O_Neil_ESA_Letter_10-18-2026.pdf"
        )


class TestFitFontSize:
    def test_short_text_keeps_size(self) -> None:
        assert fit_font_size("Ada", 100, 10) == 10

    def test_long_text_shrinks_to_minimum(self) -> None:
        assert fit_font_size("x" * 200, 40, 10) == 6
