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

"""Overlay Renderer — page bitmaps with editable controls laid on top.

Controls are positioned from the stored field/choice coordinates, scaled
by the current zoom and shifted by the active offset correction. A zoom
change only recomputes positions; extraction never re-runs.

The drawing surface may not exist yet when a render is requested (for
example while its container is still animating in), so render_page()
polls the surface provider a bounded number of times before giving up.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

import anyio
import anyio.to_thread
import fitz

from pdf_autofill.errors import SurfaceUnavailableError
from pdf_autofill.handlers.choice_indexer import select_choice
from pdf_autofill.loader import TemplateDocument
from pdf_autofill.models import (
    ChoiceGroup,
    ControlKind,
    FieldDescriptor,
    OffsetCorrection,
    OverlayControl,
    RenderedPage,
)

logger = logging.getLogger(__name__)

DEFAULT_ZOOM = 1.5
MAX_SURFACE_ATTEMPTS = 10
SURFACE_RETRY_DELAY = 0.1  # seconds


class Surface(Protocol):
    def paint(self, rendered: RenderedPage) -> None: ...


class MemorySurface:
    """Keeps the last rendering of every page; used by headless callers."""

    def __init__(self) -> None:
        self.pages: dict[int, RenderedPage] = {}

    def paint(self, rendered: RenderedPage) -> None:
        self.pages[rendered.page] = rendered


class OverlayRenderer:
    def __init__(
        self,
        template: TemplateDocument,
        fields: list[FieldDescriptor],
        choices: list[ChoiceGroup],
        surface_provider: Callable[[], Surface | None],
        offset: OffsetCorrection | None = None,
        zoom: float = DEFAULT_ZOOM,
        max_attempts: int = MAX_SURFACE_ATTEMPTS,
        retry_delay: float = SURFACE_RETRY_DELAY,
    ) -> None:
        if zoom <= 0:
            raise ValueError(f"zoom must be positive, got {zoom}")
        self.template = template
        self.fields = fields
        self.choices = choices
        self.offset = offset or OffsetCorrection()
        self.zoom = zoom
        self.current_page = 0
        self._surface_provider = surface_provider
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    # ── Layout ──────────────────────────────────────────────────────────────

    def layout(self, page: int) -> list[OverlayControl]:
        """Screen-space controls for one page at the current zoom."""
        z = self.zoom
        dx, dy = self.offset.dx, self.offset.dy
        controls: list[OverlayControl] = []

        for field in self.fields:
            if field.page != page:
                continue
            controls.append(OverlayControl(
                kind=ControlKind.FIELD,
                key=field.key,
                page=page,
                left=(field.anchor_x + dx) * z,
                top=(field.anchor_y + dy) * z,
                width=field.width * z,
                height=max(field.height, field.font_size_hint) * z,
                value=field.current_value,
            ))

        for group in self.choices:
            for option in group.options:
                if option.page != page:
                    continue
                size = max(option.height, option.font_size) * z
                controls.append(OverlayControl(
                    kind=ControlKind.CHOICE,
                    key=f"{group.group_key}:{option.option_token}",
                    page=page,
                    left=(option.x + dx) * z,
                    top=(option.y + dy) * z,
                    width=size,
                    height=size,
                    selected=option.selected,
                ))

        return controls

    # ── Rendering ───────────────────────────────────────────────────────────

    async def render_page(self, page: int | None = None) -> RenderedPage:
        """Rasterize a page, lay out its controls and paint the surface."""
        if page is not None:
            self.current_page = page
        surface = await self._wait_for_surface()
        png, width_px, height_px = await anyio.to_thread.run_sync(
            self._rasterize, self.current_page, self.zoom
        )
        rendered = RenderedPage(
            page=self.current_page,
            zoom=self.zoom,
            width_px=width_px,
            height_px=height_px,
            png=png,
            controls=self.layout(self.current_page),
        )
        surface.paint(rendered)
        return rendered

    async def set_zoom(self, zoom: float) -> RenderedPage:
        """Change zoom and re-render the current page from stored positions."""
        if zoom <= 0:
            raise ValueError(f"zoom must be positive, got {zoom}")
        self.zoom = zoom
        return await self.render_page()

    async def _wait_for_surface(self) -> Surface:
        for attempt in range(1, self._max_attempts + 1):
            surface = self._surface_provider()
            if surface is not None:
                return surface
            logger.debug(
                "Overlay surface not ready (attempt %d/%d)", attempt, self._max_attempts
            )
            if attempt < self._max_attempts:
                await anyio.sleep(self._retry_delay)
        raise SurfaceUnavailableError(
            f"Drawing surface unavailable after {self._max_attempts} attempts"
        )

    def _rasterize(self, page: int, zoom: float) -> tuple[bytes, int, int]:
        doc = self.template.open()
        try:
            if not 0 <= page < doc.page_count:
                raise ValueError(f"Page {page} out of range (0-{doc.page_count - 1})")
            pix = doc[page].get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
            return pix.tobytes("png"), pix.width, pix.height
        finally:
            doc.close()

    # ── Edits ───────────────────────────────────────────────────────────────

    def edit_field(self, key: str, value: str) -> FieldDescriptor:
        for field in self.fields:
            if field.key == key:
                field.current_value = value
                return field
        raise KeyError(f"Unknown field key: {key}")

    def click_choice(self, group_key: str, option_token: str) -> None:
        if not select_choice(self.choices, group_key, option_token):
            raise KeyError(f"Unknown choice: {group_key}:{option_token}")
