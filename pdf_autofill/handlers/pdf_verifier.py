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

"""PDF output verification — reads text back from each field's box.

A synthesized document has no tokens or live widgets left, so the check
re-extracts the text drawn inside every field's box and compares it with
the field's value (case-insensitive substring match). An empty value
passes when no token text is left behind.
"""

from __future__ import annotations

import fitz

from pdf_autofill.models import (
    ContentResult,
    ContentStatus,
    FieldDescriptor,
    OffsetCorrection,
    VerificationReport,
    VerificationSummary,
)

# Slack around a field box when reading text back, in content units
_READ_MARGIN = 2.0


def verify_output(
    file_bytes: bytes,
    fields: list[FieldDescriptor],
    offset: OffsetCorrection | None = None,
) -> VerificationReport:
    """Verify that every field's current value appears in the filled PDF."""
    offset = offset or OffsetCorrection()
    doc = fitz.open(stream=bytes(bytearray(file_bytes)), filetype="pdf")
    content_results = [_verify_field(doc, field, offset) for field in fields]
    doc.close()

    return VerificationReport(
        content_results=content_results,
        summary=summarize(content_results),
    )


def read_field_text(doc: fitz.Document, field: FieldDescriptor, offset: OffsetCorrection) -> str:
    """Text inside the field's box, collapsed onto one line."""
    page = doc[field.page]
    x = field.anchor_x + offset.dx
    y = field.anchor_y + offset.dy
    box = fitz.Rect(
        x - _READ_MARGIN,
        y - _READ_MARGIN,
        x + max(field.width, field.token_width) + _READ_MARGIN,
        y + field.height + _READ_MARGIN,
    )
    text = page.get_text("text", clip=box & page.rect)
    return " ".join(p.strip() for p in text.split("\n") if p.strip())


def _verify_field(
    doc: fitz.Document, field: FieldDescriptor, offset: OffsetCorrection
) -> ContentResult:
    expected = field.current_value
    if field.page >= doc.page_count:
        return ContentResult(
            key=field.key,
            status=ContentStatus.MISSING,
            expected=expected,
            actual="",
        )

    actual = read_field_text(doc, field, offset)
    if expected:
        ok = expected.lower() in actual.lower()
    else:
        ok = "{" not in actual
    return ContentResult(
        key=field.key,
        status=ContentStatus.MATCHED if ok else ContentStatus.MISMATCHED,
        expected=expected,
        actual=actual,
    )


def summarize(content_results: list[ContentResult]) -> VerificationSummary:
    counts = {status: 0 for status in ContentStatus}
    for result in content_results:
        counts[result.status] += 1
    return VerificationSummary(
        total=len(content_results),
        matched=counts[ContentStatus.MATCHED],
        mismatched=counts[ContentStatus.MISMATCHED],
        missing=counts[ContentStatus.MISSING],
    )
