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

"""Text layer access — text runs per page and visual line grouping.

Runs come from PyMuPDF's rawdict output: one TextRun per span, with the
left edge of every character kept so that a character offset in the
concatenated line text maps back to an exact x position.
"""

from __future__ import annotations

import fitz

from pdf_autofill.models import PageText, TextRun


class Line:
    """Runs sharing one baseline (within tolerance), sorted left to right."""

    def __init__(self, runs: list[TextRun]) -> None:
        self.runs = sorted(runs, key=lambda r: r.x0)
        self.y = runs[0].baseline
        self.text = "".join(r.text for r in self.runs)
        # (start offset in self.text, run) for each run
        self._starts: list[tuple[int, TextRun]] = []
        pos = 0
        for run in self.runs:
            self._starts.append((pos, run))
            pos += len(run.text)

    def locate(self, index: int) -> tuple[TextRun, int]:
        """Return the run holding character index and the offset inside it."""
        for start, run in self._starts:
            if start + len(run.text) > index:
                return run, index - start
        start, run = self._starts[-1]
        return run, index - start

    def x_at(self, index: int) -> float:
        run, offset = self.locate(index)
        return run.x_at(offset)

    def x_end(self, end: int) -> float:
        """Right edge of the character just before end."""
        run, offset = self.locate(max(end - 1, 0))
        if offset + 1 < len(run.char_x):
            return run.char_x[offset + 1]
        return run.x1


def group_lines(runs: list[TextRun], tolerance: float) -> list[Line]:
    """Group runs whose baselines differ by less than tolerance.

    A run joins the first line whose reference baseline is close enough,
    so grouping is stable in the extractor's reading order.
    """
    buckets: list[list[TextRun]] = []
    for run in runs:
        for bucket in buckets:
            if abs(bucket[0].baseline - run.baseline) < tolerance:
                bucket.append(run)
                break
        else:
            buckets.append([run])
    return [Line(bucket) for bucket in buckets]


def read_page(page: fitz.Page) -> PageText:
    """Collect every non-empty span on the page as a TextRun."""
    runs: list[TextRun] = []
    raw = page.get_text("rawdict")
    for block in raw.get("blocks", []):
        if block.get("type") != 0:
            continue
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                run = _span_to_run(span)
                if run is not None:
                    runs.append(run)
    rect = page.rect
    return PageText(page=page.number, width=rect.width, height=rect.height, runs=runs)


def read_pages(doc: fitz.Document) -> list[PageText]:
    return [read_page(doc[page_num]) for page_num in range(doc.page_count)]


def page_plain_text(page_text: PageText, tolerance: float) -> str:
    """Concatenate a page's runs in line order, one line per row."""
    return "\n".join(line.text for line in group_lines(page_text.runs, tolerance))


def _span_to_run(span: dict) -> TextRun | None:
    chars = span.get("chars", [])
    text = "".join(c["c"] for c in chars)
    if not text.strip():
        return None
    x0, top, x1, bottom = span["bbox"]
    baseline = chars[0]["origin"][1] if chars else span.get("origin", (x0, bottom))[1]
    return TextRun(
        text=text,
        x0=x0,
        x1=x1,
        top=top,
        bottom=bottom,
        baseline=baseline,
        font_size=span.get("size", 12.0),
        char_x=[c["bbox"][0] for c in chars],
    )
