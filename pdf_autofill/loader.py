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

"""Template Loader — fetches template bytes and owns the only copy.

PDF engines may take over the buffer they are handed, so the owned bytes
never leave TemplateDocument directly: every consumer gets a fresh copy
from duplicate() (or a freshly opened document from open()).

Transports implement ``async fetch(url) -> bytes``. HttpTransport goes
over httpx (templates on another origin are reached through the relay in
http_transport.py); FileTransport reads from disk.
"""

from __future__ import annotations

import logging
from typing import Protocol

import anyio
import fitz
import httpx

from pdf_autofill.errors import TemplateLoadError
from pdf_autofill.validators import MAX_FILE_SIZE, validate_path_safe, validate_pdf_bytes

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds


class Transport(Protocol):
    async def fetch(self, url: str) -> bytes: ...


class TemplateDocument:
    """Immutable template bytes; hands out copies only."""

    __slots__ = ("_data", "source")

    def __init__(self, data: bytes, source: str = "") -> None:
        self._data = bytes(data)
        self.source = source

    def __len__(self) -> int:
        return len(self._data)

    def duplicate(self) -> bytes:
        """Return a fresh copy of the template bytes for one engine call."""
        return bytes(bytearray(self._data))

    def open(self) -> fitz.Document:
        """Open a new PyMuPDF document over a private copy of the bytes."""
        return fitz.open(stream=self.duplicate(), filetype="pdf")

    def page_count(self) -> int:
        doc = self.open()
        count = doc.page_count
        doc.close()
        return count


class HttpTransport:
    """Fetch templates over HTTP(S) with httpx."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._http_transport = http_transport

    async def fetch(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._http_transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TemplateLoadError(
                f"Failed to fetch PDF template: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TemplateLoadError(f"Failed to fetch PDF template: {exc}") from exc

        if len(response.content) > MAX_FILE_SIZE:
            raise TemplateLoadError("PDF template exceeds maximum size")
        return response.content


class FileTransport:
    """Read templates from the local filesystem."""

    async def fetch(self, url: str) -> bytes:
        try:
            path = validate_path_safe(url)
        except ValueError as exc:
            raise TemplateLoadError(str(exc)) from exc
        try:
            return await anyio.Path(path).read_bytes()
        except OSError as exc:
            raise TemplateLoadError(f"Failed to read PDF template: {exc}") from exc


def template_from_bytes(data: bytes, source: str = "") -> TemplateDocument:
    """Validate raw bytes and wrap them in a TemplateDocument.

    Raises TemplateLoadError when the bytes are not a readable PDF.
    """
    try:
        validate_pdf_bytes(data)
    except ValueError as exc:
        raise TemplateLoadError(str(exc)) from exc

    template = TemplateDocument(data, source=source)
    try:
        doc = template.open()
    except (RuntimeError, ValueError) as exc:
        raise TemplateLoadError(f"Unreadable PDF template: {exc}") from exc
    pages = doc.page_count
    doc.close()
    if pages == 0:
        raise TemplateLoadError("PDF template has no pages")

    logger.info("Loaded template %s (%d bytes, %d pages)", source or "<bytes>", len(template), pages)
    return template


async def load_template(transport: Transport, url: str) -> TemplateDocument:
    """Fetch url through transport and return a validated TemplateDocument."""
    data = await transport.fetch(url)
    return template_from_bytes(data, source=url)
