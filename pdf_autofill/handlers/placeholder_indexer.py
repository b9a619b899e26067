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

"""Placeholder Extractor — finds {token} fields on the text layer.

Two explicit stages over an intermediate list:

1. scan_pending_fields() walks every line of every page and records each
   token's anchor, with no width.
2. assign_widths() runs once the full inventory is known: a field reaches
   up to the next token on its line, or to the right margin.

Widths cannot be computed during the scan, because a field's right edge
depends on tokens that may not have been seen yet.
"""

from __future__ import annotations

import logging
import re
from typing import NamedTuple

from pdf_autofill.config import LayoutConfig
from pdf_autofill.loader import TemplateDocument
from pdf_autofill.models import FieldDescriptor, PageText
from pdf_autofill.resolver import FieldResolver
from pdf_autofill.text_layer import group_lines, read_pages

logger = logging.getLogger(__name__)

# {name} with the closing brace optional; some extractors drop it
TOKEN_RE = re.compile(r"\{(\w+)\}?")


class Anchor(NamedTuple):
    page: int
    line_y: float
    x: float


def extract_fields(
    template: TemplateDocument, resolver: FieldResolver
) -> list[FieldDescriptor]:
    """Return every token field in the template, widths assigned."""
    doc = template.open()
    pages = read_pages(doc)
    doc.close()
    return extract_fields_from_pages(pages, resolver)


def extract_fields_from_pages(
    pages: list[PageText], resolver: FieldResolver
) -> list[FieldDescriptor]:
    layout = resolver.config.layout
    pending = scan_pending_fields(pages, resolver, layout.line_tolerance)
    stops = scan_choice_anchors(pages, layout.line_tolerance)
    page_widths = {p.page: p.width for p in pages}
    fields = assign_widths(pending, page_widths, layout, stops)
    logger.info("Found %d placeholder field(s) on %d page(s)", len(fields), len(pages))
    return fields


def scan_pending_fields(
    pages: list[PageText], resolver: FieldResolver, tolerance: float
) -> list[FieldDescriptor]:
    """First stage: anchor every non-radio token; width left at zero."""
    pending: list[FieldDescriptor] = []

    for page in pages:
        for line_no, line in enumerate(group_lines(page.runs, tolerance)):
            for match in TOKEN_RE.finditer(line.text):
                name = match.group(1)
                if name.lower().startswith("radio"):
                    continue
                token = match.group(0)
                run, _ = line.locate(match.start())
                anchor_x = line.x_at(match.start())
                pending.append(FieldDescriptor(
                    key=f"p{page.page}-l{line_no}-c{match.start()}",
                    name=token if token.endswith("}") else token + "}",
                    page=page.page,
                    anchor_x=anchor_x,
                    anchor_y=run.top,
                    line_y=line.y,
                    height=run.bottom - run.top,
                    token_width=line.x_end(match.end()) - anchor_x,
                    font_size_hint=run.font_size,
                    binding=resolver.resolve_token(token),
                ))

    return pending


def scan_choice_anchors(pages: list[PageText], tolerance: float) -> list[Anchor]:
    """Anchors of {radio...} tokens: they end a text field without being one."""
    anchors: list[Anchor] = []
    for page in pages:
        for line in group_lines(page.runs, tolerance):
            for match in TOKEN_RE.finditer(line.text):
                if match.group(1).lower().startswith("radio"):
                    anchors.append(Anchor(page.page, line.y, line.x_at(match.start())))
    return anchors


def assign_widths(
    pending: list[FieldDescriptor],
    page_widths: dict[int, float],
    layout: LayoutConfig,
    stops: list[Anchor] | None = None,
) -> list[FieldDescriptor]:
    """Second stage: width from the next token on the same line.

    stops are further anchors (choice tokens) that end a field without
    being fields themselves.

    Returns new descriptors; the pending list is not modified. A field
    never extends past the next token, even when that leaves it narrower
    than the configured minimum.
    """
    anchors = [Anchor(f.page, f.line_y, f.anchor_x) for f in pending] + list(stops or [])
    fields: list[FieldDescriptor] = []

    for field in pending:
        next_x = _next_anchor_x(field, anchors, layout.line_tolerance)
        if next_x is not None:
            available = next_x - field.anchor_x
            width = available - layout.width_padding
            if width < layout.min_width:
                width = min(layout.min_width, available)
        else:
            page_width = page_widths.get(field.page, 0.0)
            width = max(
                page_width - field.anchor_x - layout.right_margin,
                layout.min_width,
            )
        fields.append(field.model_copy(update={"width": width}))

    return fields


def _next_anchor_x(
    field: FieldDescriptor, anchors: list[Anchor], tolerance: float
) -> float | None:
    """Nearest anchor x strictly right of field on the same page and line."""
    candidates = [
        anchor.x
        for anchor in anchors
        if anchor.page == field.page
        and abs(anchor.line_y - field.line_y) < tolerance
        and anchor.x > field.anchor_x
    ]
    return min(candidates) if candidates else None
