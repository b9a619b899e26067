"""Output Synthesizer — turns the current field values into a new PDF.

Placeholder mode draws onto page content: each token's box is redacted
away, then the value (or a filled mark for a selected choice) is drawn in
its place. AcroForm mode sets widget values through PyMuPDF, regenerates
their appearances and bakes the form flat. Both reload a fresh copy of
the template, never the bytes an earlier call consumed.
"""

from __future__ import annotations

import datetime as dt
import logging
import re

import fitz

from pdf_autofill.config import LayoutConfig
from pdf_autofill.errors import SynthesisError
from pdf_autofill.loader import TemplateDocument
from pdf_autofill.models import (
    ChoiceGroup,
    FieldDescriptor,
    FillMode,
    OffsetCorrection,
    PreviewOutput,
    SourceRecord,
)

logger = logging.getLogger(__name__)

# Values that should be treated as "checked" for checkboxes
_TRUTHY_VALUES = {"true", "yes", "1", "checked", "on"}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9]")

_FONT_NAME = "helv"
_MIN_FONT_SIZE = 6.0
_BLACK = (0, 0, 0)
_WHITE = (1, 1, 1)
# Redaction band around a token baseline, as fractions of the font size
_GLYPH_ASCENT = 0.7
_GLYPH_DESCENT = 0.1

DEFAULT_DOCUMENT_KIND = "Physician_Recommendation"


def synthesize(
    template: TemplateDocument,
    fields: list[FieldDescriptor],
    choices: list[ChoiceGroup],
    mode: FillMode,
    layout: LayoutConfig | None = None,
    offset: OffsetCorrection | None = None,
) -> bytes:
    """Return the filled, flattened document as bytes.

    Raises SynthesisError when the engine rejects the template or a
    drawing/flattening call.
    """
    layout = layout or LayoutConfig()
    offset = offset or OffsetCorrection()
    try:
        doc = template.open()
    except (RuntimeError, ValueError) as exc:
        raise SynthesisError(f"Could not reopen template: {exc}") from exc

    try:
        if mode == FillMode.ACROFORM:
            _write_widgets(doc, fields)
            doc.bake(annots=False, widgets=True)
        else:
            _draw_placeholders(doc, fields, choices, layout, offset)
        result = doc.tobytes(garbage=3, deflate=True)
    except (RuntimeError, ValueError) as exc:
        raise SynthesisError(f"PDF synthesis failed: {exc}") from exc
    finally:
        doc.close()

    logger.info("Synthesized %s output (%d bytes)", mode.value, len(result))
    return result


def synthesize_preview(
    template: TemplateDocument,
    fields: list[FieldDescriptor],
    choices: list[ChoiceGroup],
    mode: FillMode,
    layout: LayoutConfig | None = None,
    offset: OffsetCorrection | None = None,
) -> PreviewOutput:
    """Return an editable copy plus an already-flattened copy for display.

    Some writers draw just-filled, unflattened widgets with a stale
    appearance; the display copy avoids that while the editable copy keeps
    the live form for further edits and the eventual download.
    """
    if mode != FillMode.ACROFORM:
        flat = synthesize(template, fields, choices, mode, layout, offset)
        return PreviewOutput(editable=flat, display=flat)

    try:
        doc = template.open()
        try:
            _write_widgets(doc, fields)
            editable = doc.tobytes(garbage=3, deflate=True)
        finally:
            doc.close()

        display_doc = fitz.open(stream=bytes(bytearray(editable)), filetype="pdf")
        try:
            display_doc.bake(annots=False, widgets=True)
            display = display_doc.tobytes(garbage=3, deflate=True)
        finally:
            display_doc.close()
    except (RuntimeError, ValueError) as exc:
        raise SynthesisError(f"PDF preview synthesis failed: {exc}") from exc

    return PreviewOutput(editable=editable, display=display)


def build_download_filename(
    record: SourceRecord,
    document_kind: str = DEFAULT_DOCUMENT_KIND,
    today: dt.date | None = None,
) -> str:
    """{first}_{last}_{kind}_{MM-DD-YYYY}.pdf with unsafe characters as "_"."""
    today = today or dt.date.today()
    first = _safe(record.subject.get("firstName") or "Patient")
    last = _safe(record.subject.get("lastName") or "")
    kind = _safe(document_kind)
    return f"{first}_{last}_{kind}_{today.strftime('%m-%d-%Y')}.pdf"


def fit_font_size(text: str, width: float, size: float) -> float:
    """Shrink size until text fits width, down to a readable minimum."""
    while size > _MIN_FONT_SIZE and fitz.get_text_length(text, fontname=_FONT_NAME, fontsize=size) > width:
        size -= 0.5
    return size


def _safe(value: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", value)


def _draw_placeholders(
    doc: fitz.Document,
    fields: list[FieldDescriptor],
    choices: list[ChoiceGroup],
    layout: LayoutConfig,
    offset: OffsetCorrection,
) -> None:
    options = [o for group in choices for o in group.options]
    _remove_tokens(doc, fields, options)

    for field in fields:
        if not field.current_value or field.page >= doc.page_count:
            continue
        page = doc[field.page]
        size = fit_font_size(
            field.current_value, field.width or field.token_width, layout.text_font_size
        )
        page.insert_text(
            fitz.Point(field.anchor_x + offset.dx, field.line_y + offset.dy),
            field.current_value,
            fontsize=size,
            fontname=_FONT_NAME,
            color=_BLACK,
        )

    for option in options:
        if not option.selected or option.page >= doc.page_count:
            continue
        page = doc[option.page]
        radius = max(option.font_size * layout.mark_ratio, layout.min_mark_radius)
        center = fitz.Point(
            option.x + radius + offset.dx,
            option.y + option.height / 2 + offset.dy,
        )
        page.draw_circle(center, radius, color=_BLACK, fill=_BLACK)


def _remove_tokens(doc: fitz.Document, fields: list[FieldDescriptor], options: list) -> None:
    """Redact the token text itself so only the replacements remain.

    The box is the glyph band around the token baseline, so text on the
    lines above and below survives.
    """
    touched: set[int] = set()
    for field in fields:
        if field.page < doc.page_count and field.token_width > 0:
            doc[field.page].add_redact_annot(_glyph_band(
                field.anchor_x, field.token_width, field.line_y, field.font_size_hint,
            ), fill=_WHITE)
            touched.add(field.page)
    for option in options:
        if option.page < doc.page_count and option.token_width > 0:
            doc[option.page].add_redact_annot(_glyph_band(
                option.x, option.token_width, option.baseline, option.font_size,
            ), fill=_WHITE)
            touched.add(option.page)
    for page_num in touched:
        doc[page_num].apply_redactions(
            images=fitz.PDF_REDACT_IMAGE_NONE,
            graphics=fitz.PDF_REDACT_LINE_ART_NONE,
        )


def _glyph_band(x: float, width: float, baseline: float, size: float) -> fitz.Rect:
    return fitz.Rect(
        x,
        baseline - _GLYPH_ASCENT * size,
        x + width,
        baseline + _GLYPH_DESCENT * size,
    )


def _write_widgets(doc: fitz.Document, fields: list[FieldDescriptor]) -> None:
    values = {f.name: f.current_value for f in fields}

    for page_num in range(doc.page_count):
        page = doc[page_num]
        for widget in page.widgets():
            if widget.field_name not in values:
                continue
            try:
                _set_widget_value(widget, values[widget.field_name])
            except (RuntimeError, ValueError) as exc:
                logger.warning("Could not set field %r: %s", widget.field_name, exc)


def _set_widget_value(widget: fitz.Widget, value: str) -> None:
    """Set a widget's value with type-appropriate logic, then redraw it.

    Checkbox: coerce to bool ("true"/"yes"/"1"/"checked" → True).
    Everything else: set the string directly.
    """
    if widget.field_type == fitz.PDF_WIDGET_TYPE_CHECKBOX:
        widget.field_value = _coerce_checkbox_value(value)
    else:
        widget.field_value = str(value)

    widget.update()


def _coerce_checkbox_value(value: str) -> bool:
    return value.strip().lower() in _TRUTHY_VALUES
