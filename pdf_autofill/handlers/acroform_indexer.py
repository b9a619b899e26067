# Copyright (C) 2025 the contributors
# SPDX-License-Identifier: AGPL-3.0-or-later
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""AcroForm inventory — walks PDF pages and lists every interactive field.

Assigns sequential keys (F1, F2, ...) in page order and binds each widget
through the field-name table. Unmapped widgets are still listed so they
render as blank editable inputs.
"""

from __future__ import annotations

import fitz

from pdf_autofill.loader import TemplateDocument
from pdf_autofill.models import FieldDescriptor
from pdf_autofill.resolver import FieldResolver

# PyMuPDF widget type constants → human-readable names
_WIDGET_TYPE_NAMES: dict[int, str] = {
    fitz.PDF_WIDGET_TYPE_TEXT: "text",
    fitz.PDF_WIDGET_TYPE_CHECKBOX: "checkbox",
    fitz.PDF_WIDGET_TYPE_COMBOBOX: "dropdown",
    fitz.PDF_WIDGET_TYPE_LISTBOX: "listbox",
    fitz.PDF_WIDGET_TYPE_RADIOBUTTON: "radio",
}


def extract_widgets(
    template: TemplateDocument, resolver: FieldResolver
) -> list[FieldDescriptor]:
    """Return one FieldDescriptor per widget, in page order."""
    doc = template.open()
    fields = collect_widgets(doc, resolver)
    doc.close()
    return fields


def collect_widgets(doc: fitz.Document, resolver: FieldResolver) -> list[FieldDescriptor]:
    fields: list[FieldDescriptor] = []
    counter = 0

    for page_num in range(doc.page_count):
        page = doc[page_num]
        for widget in page.widgets():
            counter += 1
            name = widget.field_name or f"unnamed_{counter}"
            rect = widget.rect
            font_size = widget.text_fontsize or rect.height * 0.7
            fields.append(FieldDescriptor(
                key=f"F{counter}",
                name=name,
                page=page_num,
                anchor_x=rect.x0,
                anchor_y=rect.y0,
                line_y=rect.y1,
                width=rect.width,
                height=rect.height,
                token_width=rect.width,
                font_size_hint=font_size,
                field_type=map_widget_type(widget.field_type),
                binding=resolver.resolve_field_name(name),
                current_value=_widget_value(widget),
            ))

    return fields


def map_widget_type(widget_type: int) -> str:
    """Convert PyMuPDF widget type constant to a human-readable string."""
    return _WIDGET_TYPE_NAMES.get(widget_type, f"unknown({widget_type})")


def _widget_value(widget: fitz.Widget) -> str:
    """Current value as a string; an unchecked box reads as empty."""
    value = widget.field_value
    if value is None or value is False or value == "Off":
        return ""
    return str(value)
