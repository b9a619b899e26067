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

"""Pydantic models for the auto-fill engine and its MCP tool outputs."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


# ── Enums ──────────────────────────────────────────────────────────────────────

class FillMode(str, Enum):
    PLACEHOLDER = "placeholder"
    ACROFORM = "acroform"


class Namespace(str, Enum):
    SUBJECT = "subject"
    COUNTERPART = "counterpart"
    META = "meta"


class SessionState(str, Enum):
    LOADING = "loading"
    CLASSIFIED = "classified"
    EXTRACTED = "extracted"
    EDITABLE = "editable"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    LOAD_FAILED = "load_failed"
    EXTRACT_FAILED = "extract_failed"


class ControlKind(str, Enum):
    FIELD = "field"
    CHOICE = "choice"


# ── Source data ───────────────────────────────────────────────────────────────

class SourceBinding(BaseModel, frozen=True):
    """Where a field's value comes from: one key in one record namespace."""
    namespace: Namespace
    key: str


class SourceRecord(BaseModel):
    """Flat key/value data for one fill session, split into three namespaces."""
    subject: dict[str, str] = Field(default_factory=dict)
    counterpart: dict[str, str] = Field(default_factory=dict)
    meta: dict[str, str] = Field(default_factory=dict)

    def get(self, binding: SourceBinding) -> str:
        values = getattr(self, binding.namespace.value)
        value = values.get(binding.key)
        return "" if value is None else str(value)


class OffsetCorrection(BaseModel):
    dx: float = 0.0
    dy: float = 0.0


# ── Text layer ────────────────────────────────────────────────────────────────

class TextRun(BaseModel):
    """One run of text as reported by the PDF text extractor.

    char_x holds the left edge of every character in text, so a character
    offset inside the run maps to an exact x position. baseline is the
    y of the run's origin; top/bottom bound its glyph box. All values are
    content units in top-left page space.
    """
    text: str
    x0: float
    x1: float
    top: float
    bottom: float
    baseline: float
    font_size: float = 12.0
    char_x: list[float] = Field(default_factory=list)

    def x_at(self, offset: int) -> float:
        if 0 <= offset < len(self.char_x):
            return self.char_x[offset]
        if not self.text:
            return self.x0
        # No per-character boxes: interpolate across the run
        return self.x0 + (offset / max(len(self.text), 1)) * (self.x1 - self.x0)


class PageText(BaseModel):
    page: int
    width: float
    height: float
    runs: list[TextRun]


# ── Detected fields ───────────────────────────────────────────────────────────

class FieldDescriptor(BaseModel):
    """One detected fillable location.

    anchor_x/anchor_y: top-left corner of the token (or widget) box.
    line_y: baseline of the visual line the token sits on; replacement
    text is drawn on it. token_width: width of the token text itself.
    """
    key: str
    name: str
    page: int
    anchor_x: float
    anchor_y: float
    line_y: float
    width: float = 0.0
    height: float = 12.0
    token_width: float = 0.0
    font_size_hint: float = 12.0
    field_type: str = "text"
    binding: SourceBinding | None = None
    current_value: str = ""


class ChoiceOption(BaseModel):
    group_key: str
    option_token: str
    page: int
    x: float
    y: float
    baseline: float
    height: float = 12.0
    token_width: float = 0.0
    font_size: float = 12.0
    selected: bool = False


class ChoiceGroup(BaseModel):
    """Mutually exclusive options; at most one is selected."""
    group_key: str
    options: list[ChoiceOption] = Field(default_factory=list)

    @property
    def selected_option(self) -> ChoiceOption | None:
        for option in self.options:
            if option.selected:
                return option
        return None

    def select(self, option_token: str) -> bool:
        """Select one option and clear every other one in this group.

        Returns False (and changes nothing) when the option is unknown.
        """
        wanted = option_token.lower()
        if not any(o.option_token.lower() == wanted for o in self.options):
            return False
        for option in self.options:
            option.selected = option.option_token.lower() == wanted
        return True

    def clear(self) -> None:
        for option in self.options:
            option.selected = False


class ExtractionResult(BaseModel):
    mode: FillMode
    fields: list[FieldDescriptor] = Field(default_factory=list)
    choices: list[ChoiceGroup] = Field(default_factory=list)
    page_sizes: list[tuple[float, float]] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.fields and not any(g.options for g in self.choices)


# ── Overlay ───────────────────────────────────────────────────────────────────

class OverlayControl(BaseModel):
    """One input box or choice marker, positioned in screen pixels."""
    kind: ControlKind
    key: str
    page: int
    left: float
    top: float
    width: float
    height: float
    value: str = ""
    selected: bool = False


class RenderedPage(BaseModel):
    page: int
    zoom: float
    width_px: int
    height_px: int
    png: bytes
    controls: list[OverlayControl]


# ── Output ────────────────────────────────────────────────────────────────────

class DownloadOutput(BaseModel):
    filename: str
    data: bytes


class PreviewOutput(BaseModel):
    """editable keeps live form fields; display is already flattened."""
    editable: bytes
    display: bytes


# ── verify_output ─────────────────────────────────────────────────────────────

class ContentStatus(str, Enum):
    MATCHED = "matched"
    MISMATCHED = "mismatched"
    MISSING = "missing"


class ContentResult(BaseModel):
    key: str
    status: ContentStatus
    expected: str
    actual: str


class VerificationSummary(BaseModel):
    total: int
    matched: int
    mismatched: int
    missing: int


class VerificationReport(BaseModel):
    content_results: list[ContentResult]
    summary: VerificationSummary
