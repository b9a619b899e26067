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

"""Shared input validation.

Provides magic-byte checks, path safety, file size limits, and the
resolve_file_input() helper that lets MCP tools accept either a file_path
or base64-encoded bytes.
"""

from __future__ import annotations

import base64
import binascii
from pathlib import Path

# Maximum file size in bytes (50 MB) — reject before reading into memory
MAX_FILE_SIZE = 50 * 1024 * 1024

# Maximum base64 string length (~67 MB encoded ≈ 50 MB decoded)
MAX_BASE64_LENGTH = 67 * 1024 * 1024

PDF_MAGIC = b"%PDF"


def validate_pdf_bytes(file_bytes: bytes) -> None:
    """Basic sanity check that file_bytes looks like a PDF.

    Raises ValueError if validation fails.
    """
    if not file_bytes:
        raise ValueError("file_bytes is empty")
    if len(file_bytes) > MAX_FILE_SIZE:
        raise ValueError(
            f"File exceeds maximum size ({MAX_FILE_SIZE // (1024 * 1024)} MB)"
        )
    if not file_bytes[:1024].lstrip().startswith(PDF_MAGIC):
        raise ValueError("file_bytes does not appear to be a valid pdf file")


def validate_path_safe(file_path: str) -> Path:
    """Resolve a user-supplied path and check for traversal attacks.

    Rejects null bytes and ensures the resolved path is a real filesystem
    location (not /dev/*, /proc/*, /sys/*).  Returns the resolved Path.
    """
    if "\x00" in file_path:
        raise ValueError("Invalid file path")

    resolved = Path(file_path).resolve()

    blocked_prefixes = ("/dev/", "/proc/", "/sys/")
    resolved_str = str(resolved)
    if any(resolved_str.startswith(p) for p in blocked_prefixes):
        raise ValueError("Access to system paths is not allowed")

    return resolved


def resolve_file_input(
    file_bytes_b64: str | None,
    file_path: str | None,
) -> bytes:
    """Resolve PDF input from either a disk path or base64-encoded bytes.

    Returns the raw bytes. Raises ValueError on bad input.
    """
    if file_path:
        return _resolve_from_path(file_path)

    if file_bytes_b64:
        return _resolve_from_base64(file_bytes_b64)

    raise ValueError(
        "Provide either file_path or file_bytes_b64. Neither was supplied."
    )


def _resolve_from_path(file_path: str) -> bytes:
    path = validate_path_safe(file_path)
    if not path.is_file():
        raise ValueError("File not found or not accessible")

    if path.stat().st_size > MAX_FILE_SIZE:
        raise ValueError(
            f"File exceeds maximum size ({MAX_FILE_SIZE // (1024 * 1024)} MB)"
        )

    raw = path.read_bytes()
    validate_pdf_bytes(raw)
    return raw


def _resolve_from_base64(file_bytes_b64: str) -> bytes:
    if len(file_bytes_b64) > MAX_BASE64_LENGTH:
        raise ValueError(
            f"Base64 input exceeds maximum size "
            f"({MAX_BASE64_LENGTH // (1024 * 1024)} MB encoded)"
        )

    try:
        raw = base64.b64decode(file_bytes_b64, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Invalid base64 encoding in file_bytes_b64")
    validate_pdf_bytes(raw)
    return raw
