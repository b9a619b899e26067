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

"""Shared test infrastructure.

PDF templates are generated in memory (tests/fixtures/create_pdf_fixtures.py)
and, for the tools that take a file_path, written once per session to a
temp directory.

The HTTP part provides the mcp_session fixture (initialized TestClient +
session headers), call_tool helper (builds JSON-RPC tools/call requests),
and parse_tool_result helper (extracts tool results from SSE responses).
"""

import json

import pytest
from starlette.testclient import TestClient

from pdf_autofill.config import load_config
from pdf_autofill.http_transport import build_app
from pdf_autofill.mcp_app import mcp
from pdf_autofill.models import PageText, SourceRecord, TextRun
from tests.fixtures import create_pdf_fixtures as pdfs

import pdf_autofill.tools_extract  # noqa: F401 -- trigger tool registration
import pdf_autofill.tools_write  # noqa: F401

INIT_BODY = {
    "jsonrpc": "2.0",
    "method": "initialize",
    "id": 1,
    "params": {
        "protocolVersion": "2025-03-26",
        "capabilities": {},
        "clientInfo": {"name": "test", "version": "1.0"},
    },
}

MCP_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/event-stream",
}

RECORD = {
    "subject": {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "dateOfBirth": "1990-04-02",
        "city": "London",
        "idType": "us_passport_photo_id",
        "disabilityCondition": "E",
    },
    "counterpart": {"firstName": "Charles", "lastName": "Fore"},
    "meta": {"generatedDate": "10/18/2026"},
}


# ── Text runs ─────────────────────────────────────────────────────────────────


def make_run(
    text: str, x0: float, baseline: float, char_w: float = 6.0, size: float = 11.0
) -> TextRun:
    """A run with evenly spaced characters, char_w wide each."""
    return TextRun(
        text=text,
        x0=x0,
        x1=x0 + len(text) * char_w,
        top=baseline - size * 0.8,
        bottom=baseline + size * 0.2,
        baseline=baseline,
        font_size=size,
        char_x=[x0 + i * char_w for i in range(len(text))],
    )


def make_page(runs: list[TextRun], page: int = 0, width: float = 612.0) -> PageText:
    return PageText(page=page, width=width, height=792.0, runs=runs)


# ── Templates and config ──────────────────────────────────────────────────────


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def record() -> SourceRecord:
    return SourceRecord.model_validate(RECORD)


@pytest.fixture
def placeholder_pdf() -> bytes:
    return pdfs.build_placeholder_form()


@pytest.fixture
def radio_pdf() -> bytes:
    return pdfs.build_radio_form()


@pytest.fixture
def acroform_pdf() -> bytes:
    return pdfs.build_acroform()


@pytest.fixture
def mixed_pdf() -> bytes:
    return pdfs.build_mixed_form()


@pytest.fixture
def plain_pdf() -> bytes:
    return pdfs.build_plain_document()


@pytest.fixture
def two_page_pdf() -> bytes:
    return pdfs.build_two_page_form()


@pytest.fixture(scope="session")
def fixture_paths(tmp_path_factory) -> dict[str, str]:
    """Every fixture template written to disk, name -> path string."""
    directory = tmp_path_factory.mktemp("pdf_fixtures")
    return {name: str(path) for name, path in pdfs.write_fixtures(directory).items()}


# ── HTTP ──────────────────────────────────────────────────────────────────────


def _fresh_app():
    """Build the Starlette app with a fresh session manager."""
    mcp._session_manager = None
    return build_app()


@pytest.fixture(autouse=True)
def _reset_session_manager():
    """Reset session manager after every test so the next one gets a fresh one."""
    yield
    mcp._session_manager = None


@pytest.fixture()
def mcp_session():
    """TestClient with lifespan, correct Host, and completed init handshake.

    Yields (client, session_headers) where session_headers includes
    Content-Type, Accept, and Mcp-Session-Id for subsequent requests.
    """
    app = _fresh_app()
    with TestClient(
        app,
        raise_server_exceptions=False,
        headers={"Host": "localhost:8000"},
    ) as client:
        resp = client.post("/mcp", json=INIT_BODY, headers=MCP_HEADERS)
        assert resp.status_code == 200
        session_id = resp.headers.get("mcp-session-id")

        # Send initialized notification to complete handshake
        notif = {
            "jsonrpc": "2.0",
            "method": "notifications/initialized",
        }
        notif_headers = {**MCP_HEADERS, "Mcp-Session-Id": session_id}
        client.post("/mcp", json=notif, headers=notif_headers)

        session_headers = {**MCP_HEADERS, "Mcp-Session-Id": session_id}
        yield client, session_headers


def call_tool(client, headers, tool_name, arguments, request_id=99):
    """Send a JSON-RPC tools/call request and return the raw response."""
    body = {
        "jsonrpc": "2.0",
        "method": "tools/call",
        "id": request_id,
        "params": {"name": tool_name, "arguments": arguments},
    }
    return client.post("/mcp", json=body, headers=headers)


def parse_tool_result(response) -> dict:
    """Extract the tool result dict from an SSE response.

    Parses the SSE text, finds the data line containing a JSON-RPC result,
    extracts result.content[0].text, and parses that as JSON.

    Raises ValueError if no result is found in the response.
    """
    for line in response.text.splitlines():
        if not line.startswith("data:"):
            continue
        payload = line[len("data:"):].strip()
        if not payload:
            continue
        try:
            msg = json.loads(payload)
        except json.JSONDecodeError:
            continue
        if "result" not in msg:
            continue
        content = msg["result"].get("content", [])
        if not content:
            continue
        text = content[0].get("text", "")
        return json.loads(text)

    raise ValueError(
        f"No tool result found in SSE response: {response.text[:500]}"
    )


def tool_error_text(response) -> str:
    """Return the error text of an isError tool result, or fail."""
    for line in response.text.splitlines():
        if not line.startswith("data:"):
            continue
        payload = line[len("data:"):].strip()
        if not payload:
            continue
        msg = json.loads(payload)
        if "result" not in msg:
            continue
        result = msg["result"]
        assert result.get("isError") is True
        return result["content"][0]["text"]

    raise AssertionError("No error result found in SSE response")
