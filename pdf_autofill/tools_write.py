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

"""MCP tools for filling templates and verifying filled output.

fill_template runs the whole session (load, classify, extract, pre-fill,
apply edits, synthesize) in one call; verify_output re-extracts the
template and checks that every field value landed in the filled PDF.
"""

from __future__ import annotations

import base64

from pdf_autofill.errors import USAGE, resolve_file_for_tool, validate_string_map
from pdf_autofill.handlers.pdf_writer import DEFAULT_DOCUMENT_KIND
from pdf_autofill.mcp_app import mcp
from pdf_autofill.session import FillSession
from pdf_autofill.tools_extract import load_session
from pdf_autofill.validators import validate_path_safe


def _apply_edits(
    tool_name: str,
    session: FillSession,
    overrides: dict | None,
    selections: dict | None,
) -> None:
    """Apply per-field overrides and per-group choice selections."""
    for key, value in validate_string_map(tool_name, "overrides", overrides).items():
        try:
            session.edit_field(key, value)
        except KeyError:
            valid = [f.key for f in session.fields]
            raise ValueError(
                f"{tool_name} error: unknown field key '{key}' in overrides.\n"
                f"  Valid keys: {valid}\n"
                f"  Run extract_fields first to see every key."
            ) from None

    for group_key, option in validate_string_map(tool_name, "selections", selections).items():
        try:
            session.select_choice(group_key, option)
        except KeyError:
            valid = {
                g.group_key: [o.option_token for o in g.options]
                for g in session.choices
            }
            raise ValueError(
                f"{tool_name} error: unknown choice '{group_key}: {option}' in selections.\n"
                f"  Valid groups and options: {valid}\n"
                f"  Example: {USAGE[tool_name]}"
            ) from None


@mcp.tool()
def fill_template(
    record: dict | None = None,
    file_bytes_b64: str = "",
    file_path: str = "",
    overrides: dict | None = None,
    selections: dict | None = None,
    output_file_path: str = "",
    document_kind: str = DEFAULT_DOCUMENT_KIND,
    flatten_preview: bool = False,
    config_path: str = "",
) -> dict:
    """Fill a template from a record and return the flattened PDF.

    file_path: path to the template on disk (preferred for interactive use).
    file_bytes_b64: base64-encoded template bytes (for programmatic use).
    record: {"subject": {...}, "counterpart": {...}, "meta": {...}} string
        maps. Bound fields and choice groups are pre-filled from it.
    overrides: {field_key: value} replacing pre-filled values. Keys come
        from extract_fields (p0-l3-c1, F1, ...).
    selections: {group_key: option_token} choosing one option per group.
    output_file_path: when provided, writes the PDF to disk instead of
        returning base64.
    document_kind: middle part of the suggested download filename.
    flatten_preview: when True, also returns the filled but not yet
        flattened copy as editable_file_bytes_b64 (AcroForm templates keep
        their live fields in it).

    Returns {file_bytes_b64: ...} or {file_path: ...}, plus filename,
    summary and any warnings.
    """
    session = load_session(
        "fill_template", file_bytes_b64, file_path, record, config_path,
        document_kind=document_kind,
    )
    _apply_edits("fill_template", session, overrides, selections)

    if flatten_preview:
        preview = session.preview()
        download = session.download()
        extra = {"editable_file_bytes_b64": base64.b64encode(preview.editable).decode()}
    else:
        download = session.download()
        extra = {}

    summary = {
        "mode": session.mode.value,
        "fields": len(session.fields),
        "filled": sum(1 for f in session.fields if f.current_value),
        "choices_selected": sum(1 for g in session.choices if g.selected_option),
    }

    if output_file_path:
        out = validate_path_safe(output_file_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(download.data)
        response: dict = {"file_path": str(out)}
    else:
        response = {"file_bytes_b64": base64.b64encode(download.data).decode()}

    response["filename"] = download.filename
    response.update(extra)
    if session.warnings:
        response["warnings"] = list(session.warnings)
    response["summary"] = summary
    return response


@mcp.tool()
def verify_output(
    file_bytes_b64: str = "",
    file_path: str = "",
    template_bytes_b64: str = "",
    template_path: str = "",
    record: dict | None = None,
    overrides: dict | None = None,
    config_path: str = "",
) -> dict:
    """Check that every field value appears where it belongs in a filled PDF.

    The template is re-extracted and pre-filled from the same record (plus
    overrides) used for fill_template; each field's box in the filled PDF
    is then read back and compared with its expected value. An empty
    expected value passes when no {token} text is left in the box.

    file_path / file_bytes_b64: the filled PDF.
    template_path / template_bytes_b64: the template it was filled from.
    """
    raw = resolve_file_for_tool(
        "verify_output", file_bytes_b64 or None, file_path or None
    )
    session = load_session(
        "verify_output", template_bytes_b64, template_path, record, config_path
    )
    _apply_edits("verify_output", session, overrides, None)
    return session.verify(raw).model_dump(mode="json")
