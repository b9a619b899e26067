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

"""MCP tools for classifying templates and listing their fillable targets.

These are the read-only tools in the pipeline. Each function is decorated
with @mcp.tool() to register it on the shared FastMCP instance.
"""

from __future__ import annotations

from pdf_autofill.classifier import classify
from pdf_autofill.config import config_from_env
from pdf_autofill.errors import build_source_record, resolve_file_for_tool
from pdf_autofill.handlers.acroform_indexer import extract_widgets
from pdf_autofill.loader import template_from_bytes
from pdf_autofill.mcp_app import mcp
from pdf_autofill.resolver import FieldResolver
from pdf_autofill.session import FillSession


def load_session(
    tool_name: str,
    file_bytes_b64: str,
    file_path: str,
    record: dict | None,
    config_path: str,
    document_kind: str | None = None,
) -> FillSession:
    """Resolve the template input and run it through load and extraction."""
    raw = resolve_file_for_tool(tool_name, file_bytes_b64 or None, file_path or None)
    source_record = build_source_record(tool_name, record)
    config = config_from_env(config_path or None)

    kwargs = {"document_kind": document_kind} if document_kind else {}
    session = FillSession(config, source_record, **kwargs)
    session.open_bytes(raw, source=file_path)
    return session


@mcp.tool()
def classify_template(
    file_bytes_b64: str = "",
    file_path: str = "",
    config_path: str = "",
) -> dict:
    """Decide whether a template is filled by placeholder tokens or AcroForm fields.

    Templates whose text contains a known {token} (or a {radio... marker)
    are "placeholder"; otherwise templates with interactive fields whose
    names match the field-name table are "acroform"; anything else falls
    back to "placeholder".

    file_path: path to the template on disk (preferred for interactive use).
    file_bytes_b64: base64-encoded template bytes (for programmatic use).
    config_path: optional JSON config replacing the bundled lookup tables.
    """
    raw = resolve_file_for_tool(
        "classify_template", file_bytes_b64 or None, file_path or None
    )
    config = config_from_env(config_path or None)
    template = template_from_bytes(raw, source=file_path)
    return {
        "mode": classify(template, config).value,
        "page_count": template.page_count(),
    }


@mcp.tool()
def extract_fields(
    file_bytes_b64: str = "",
    file_path: str = "",
    record: dict | None = None,
    config_path: str = "",
) -> dict:
    """Detect every fillable location and choice group, pre-filled from record.

    Returns {mode, fields, choices, page_sizes, warnings}. Each field has a
    stable key (p0-l3-c1 for tokens, F1 for AcroForm widgets) that
    fill_template accepts in its overrides argument. Each choice group lists
    its options with the auto-selected one marked.

    file_path: path to the template on disk (preferred for interactive use).
    file_bytes_b64: base64-encoded template bytes (for programmatic use).
    record: {"subject": {...}, "counterpart": {...}, "meta": {...}} string
        maps used to pre-fill bound fields. Optional.
    config_path: optional JSON config replacing the bundled lookup tables.
    """
    session = load_session(
        "extract_fields", file_bytes_b64, file_path, record, config_path
    )
    return session.result().model_dump(mode="json")


@mcp.tool()
def list_form_fields(
    file_bytes_b64: str = "",
    file_path: str = "",
    config_path: str = "",
) -> dict:
    """Return a plain inventory of all interactive (AcroForm) fields.

    Lists every widget with its name, type, page, box and current value,
    plus the record binding its name resolves to (null when unknown).
    Works on any PDF, whichever mode classify_template would choose.

    file_path: path to the template on disk (preferred for interactive use).
    file_bytes_b64: base64-encoded template bytes (for programmatic use).
    """
    raw = resolve_file_for_tool(
        "list_form_fields", file_bytes_b64 or None, file_path or None
    )
    resolver = FieldResolver(config_from_env(config_path or None))
    fields = extract_widgets(template_from_bytes(raw, source=file_path), resolver)
    return {"fields": [f.model_dump(mode="json") for f in fields]}
