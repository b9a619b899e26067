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

"""One interactive fill session for one template.

State machine::

    LOADING -> CLASSIFIED -> EXTRACTED -> EDITABLE <-> SYNTHESIZING -> DONE
       |                         |
    LOAD_FAILED            EXTRACT_FAILED (nothing detected; still editable)

Mode and template are fixed once loaded; a different template needs a new
session. Field and choice state lives only here and is discarded with the
session.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable

from pdf_autofill.classifier import classify_document
from pdf_autofill.config import FillConfig
from pdf_autofill.errors import SessionStateError, SynthesisError, TemplateLoadError
from pdf_autofill.handlers.acroform_indexer import collect_widgets
from pdf_autofill.handlers.choice_indexer import extract_choices_from_pages
from pdf_autofill.handlers.pdf_verifier import verify_output
from pdf_autofill.handlers.pdf_writer import (
    DEFAULT_DOCUMENT_KIND,
    build_download_filename,
    synthesize,
    synthesize_preview,
)
from pdf_autofill.handlers.placeholder_indexer import extract_fields_from_pages
from pdf_autofill.loader import (
    HttpTransport,
    TemplateDocument,
    Transport,
    load_template,
    template_from_bytes,
)
from pdf_autofill.models import (
    ChoiceGroup,
    DownloadOutput,
    ExtractionResult,
    FieldDescriptor,
    FillMode,
    OffsetCorrection,
    PreviewOutput,
    RenderedPage,
    SessionState,
    SourceRecord,
    VerificationReport,
)
from pdf_autofill.overlay import DEFAULT_ZOOM, MemorySurface, OverlayRenderer, Surface
from pdf_autofill.resolver import FieldResolver
from pdf_autofill.text_layer import read_pages

logger = logging.getLogger(__name__)

NO_FIELDS_WARNING = (
    "No fillable fields were detected in this template. "
    "The document is shown as-is and can still be downloaded."
)

_EDITABLE_STATES = {
    SessionState.EDITABLE,
    SessionState.DONE,
    SessionState.EXTRACT_FAILED,
}


class FillSession:
    def __init__(
        self,
        config: FillConfig,
        record: SourceRecord,
        transport: Transport | None = None,
        surface_provider: Callable[[], Surface | None] | None = None,
        zoom: float = DEFAULT_ZOOM,
        document_kind: str = DEFAULT_DOCUMENT_KIND,
    ) -> None:
        self.config = config
        self.record = record
        self.resolver = FieldResolver(config)
        self.offset = config.offset_for(record.counterpart.get("lastName", ""))
        self.document_kind = document_kind
        self.state = SessionState.LOADING
        self.template: TemplateDocument | None = None
        self.mode: FillMode | None = None
        self.fields: list[FieldDescriptor] = []
        self.choices: list[ChoiceGroup] = []
        self.page_sizes: list[tuple[float, float]] = []
        self.warnings: list[str] = []
        self.overlay: OverlayRenderer | None = None
        self._transport = transport or HttpTransport()
        self._zoom = zoom
        if surface_provider is None:
            surface = MemorySurface()
            surface_provider = lambda: surface  # noqa: E731
        self._surface_provider = surface_provider

    # ── Loading ─────────────────────────────────────────────────────────────

    async def open(self, url: str) -> ExtractionResult:
        """Fetch, classify and extract. Raises TemplateLoadError on fetch failure."""
        self._require(SessionState.LOADING)
        try:
            template = await load_template(self._transport, url)
        except TemplateLoadError:
            self.state = SessionState.LOAD_FAILED
            logger.warning("Template load failed for %s", url)
            raise
        return self.load(template)

    def open_bytes(self, data: bytes, source: str = "") -> ExtractionResult:
        self._require(SessionState.LOADING)
        try:
            template = template_from_bytes(data, source=source)
        except TemplateLoadError:
            self.state = SessionState.LOAD_FAILED
            raise
        return self.load(template)

    def load(self, template: TemplateDocument) -> ExtractionResult:
        """Classify and extract. An engine failure leaves the session LOAD_FAILED."""
        self._require(SessionState.LOADING)
        self.template = template
        try:
            self._extract(template)
        except (RuntimeError, ValueError) as exc:
            self.template = None
            self.mode = None
            self.fields, self.choices, self.page_sizes = [], [], []
            self.state = SessionState.LOAD_FAILED
            logger.warning("Template extraction failed: %s", exc)
            raise TemplateLoadError(f"Could not read PDF template: {exc}") from exc

        self.resolver.fill(self.fields, self.record)
        self.state = SessionState.EXTRACTED
        logger.info(
            "Extracted %d field(s) and %d choice group(s) in %s mode",
            len(self.fields), len(self.choices), self.mode.value,
        )
        self.overlay = OverlayRenderer(
            template,
            self.fields,
            self.choices,
            self._surface_provider,
            offset=self._drawn_offset(),
            zoom=self._zoom,
        )

        result = self.result()
        if result.is_empty:
            self.warnings.append(NO_FIELDS_WARNING)
            logger.warning("No fields detected in template %s", template.source or "<bytes>")
            self.state = SessionState.EXTRACT_FAILED
        else:
            self.state = SessionState.EDITABLE
        result.warnings = list(self.warnings)
        return result

    def _extract(self, template: TemplateDocument) -> None:
        doc = template.open()
        try:
            self.mode = classify_document(doc, self.config)
            self.state = SessionState.CLASSIFIED

            if self.mode == FillMode.ACROFORM:
                self.fields = collect_widgets(doc, self.resolver)
                self.choices = []
            else:
                pages = read_pages(doc)
                self.fields = extract_fields_from_pages(pages, self.resolver)
                self.choices = extract_choices_from_pages(pages, self.resolver, self.record)
            self.page_sizes = [
                (doc[n].rect.width, doc[n].rect.height) for n in range(doc.page_count)
            ]
        finally:
            doc.close()

    def result(self) -> ExtractionResult:
        return ExtractionResult(
            mode=self.mode or FillMode.PLACEHOLDER,
            fields=self.fields,
            choices=self.choices,
            page_sizes=self.page_sizes,
            warnings=list(self.warnings),
        )

    # ── Interaction ─────────────────────────────────────────────────────────

    def edit_field(self, key: str, value: str) -> FieldDescriptor:
        self._require_editable()
        field = self.overlay.edit_field(key, value)
        self._reopen_for_edits()
        return field

    def select_choice(self, group_key: str, option_token: str) -> None:
        self._require_editable()
        self.overlay.click_choice(group_key, option_token)
        self._reopen_for_edits()

    async def render_page(self, page: int = 0) -> RenderedPage:
        self._require_editable()
        return await self.overlay.render_page(page)

    async def set_zoom(self, zoom: float) -> RenderedPage:
        self._require_editable()
        return await self.overlay.set_zoom(zoom)

    # ── Output ──────────────────────────────────────────────────────────────

    def synthesize(self) -> bytes:
        """Produce the flattened output. The session stays usable on failure."""
        self._require_editable()
        previous = self.state
        self.state = SessionState.SYNTHESIZING
        try:
            data = synthesize(
                self.template,
                self.fields,
                self.choices,
                self.mode,
                layout=self.config.layout,
                offset=self._drawn_offset(),
            )
        except SynthesisError:
            self.state = previous
            raise
        self.state = SessionState.DONE
        return data

    def download(self, today: dt.date | None = None) -> DownloadOutput:
        data = self.synthesize()
        return DownloadOutput(
            filename=build_download_filename(self.record, self.document_kind, today),
            data=data,
        )

    def print_output(self) -> bytes:
        """Same bytes as a download; the host hands them to its print facility."""
        return self.synthesize()

    def preview(self) -> PreviewOutput:
        self._require_editable()
        return synthesize_preview(
            self.template,
            self.fields,
            self.choices,
            self.mode,
            layout=self.config.layout,
            offset=self._drawn_offset(),
        )

    def verify(self, output: bytes) -> VerificationReport:
        return verify_output(output, self.fields, self._drawn_offset())

    # ── State guards ────────────────────────────────────────────────────────

    def _require(self, state: SessionState) -> None:
        if self.state != state:
            raise SessionStateError(
                f"Operation requires state '{state.value}', session is '{self.state.value}'"
            )

    def _require_editable(self) -> None:
        if self.state not in _EDITABLE_STATES:
            raise SessionStateError(
                f"Session is '{self.state.value}'; fields are not editable"
            )

    def _drawn_offset(self) -> OffsetCorrection | None:
        # Widget values are baked at the widget rect; only drawn text is shifted.
        return self.offset if self.mode == FillMode.PLACEHOLDER else None

    def _reopen_for_edits(self) -> None:
        if self.state == SessionState.DONE:
            self.state = SessionState.EDITABLE
