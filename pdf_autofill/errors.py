"""Engine exceptions plus validation wrappers with agent-friendly messages.

The wrappers replace inline model construction in tools_extract.py and
tools_write.py. When a caller passes bad inputs, the error names the exact
problem, shows received vs expected, and includes a mini usage example.
"""

from __future__ import annotations

from pydantic import ValidationError

from pdf_autofill.models import Namespace, SourceRecord
from pdf_autofill.validators import resolve_file_input


class AutofillError(Exception):
    """Base class for engine failures."""


class TemplateLoadError(AutofillError):
    """Template bytes could not be fetched, or are not a readable PDF."""


class SynthesisError(AutofillError):
    """Producing the filled output failed; the session stays editable."""


class SurfaceUnavailableError(AutofillError):
    """The overlay drawing surface never became available."""


class SessionStateError(AutofillError):
    """An operation was invoked in a state that does not allow it."""


# ── Usage examples per tool ──────────────────────────────────────────────────

USAGE: dict[str, str] = {
    "classify_template": 'classify_template(file_path="template.pdf")',
    "extract_fields": (
        'extract_fields(file_path="template.pdf", '
        'record={"subject": {"firstName": "Ada"}})'
    ),
    "list_form_fields": 'list_form_fields(file_path="template.pdf")',
    "fill_template": (
        'fill_template(file_path="template.pdf", record={"subject": '
        '{"firstName": "Ada"}, "counterpart": {}, "meta": {}}, '
        'output_file_path="filled.pdf")'
    ),
    "verify_output": (
        'verify_output(file_path="filled.pdf", template_path="template.pdf", '
        'record={"subject": {"firstName": "Ada"}})'
    ),
}

_NAMESPACES = tuple(ns.value for ns in Namespace)


def resolve_file_for_tool(
    tool_name: str,
    file_bytes_b64: str | None,
    file_path: str | None,
) -> bytes:
    """Wrap resolve_file_input with tool-specific context on failure."""
    try:
        return resolve_file_input(file_bytes_b64, file_path)
    except ValueError as exc:
        example = USAGE.get(tool_name, tool_name)
        raise ValueError(
            f"{tool_name} error: {exc}\n"
            f"  Example: {example}"
        ) from exc


def build_source_record(tool_name: str, record: dict | None) -> SourceRecord:
    """Build a SourceRecord with a rich error on bad shape."""
    if not record:
        return SourceRecord()

    received = sorted(record.keys())
    unexpected = [k for k in record if k not in _NAMESPACES]
    if unexpected:
        raise ValueError(
            f"{tool_name} validation error in record:\n"
            f"  Received keys: {received}\n"
            f"  Unexpected namespaces: {unexpected}\n"
            f"  Valid namespaces: {', '.join(_NAMESPACES)}\n"
            f"  Example: {USAGE.get(tool_name, tool_name)}"
        )
    try:
        return SourceRecord.model_validate(record)
    except ValidationError as exc:
        raise ValueError(
            f"{tool_name} validation error in record:\n"
            f"  Received keys: {received}\n"
            f"  Error: {exc}\n"
            f"  Each namespace must map string keys to string values.\n"
            f"  Example: {USAGE.get(tool_name, tool_name)}"
        ) from exc


def validate_string_map(tool_name: str, arg_name: str, value: dict | None) -> dict[str, str]:
    """Check that an overrides/selections argument is a flat str->str map."""
    if not value:
        return {}
    bad = [k for k, v in value.items() if not isinstance(k, str) or not isinstance(v, str)]
    if bad:
        raise ValueError(
            f"{tool_name} validation error in {arg_name}:\n"
            f"  Non-string entries for keys: {sorted(map(str, bad))}\n"
            f"  {arg_name} must map string keys to string values.\n"
            f"  Example: {USAGE.get(tool_name, tool_name)}"
        )
    return dict(value)
