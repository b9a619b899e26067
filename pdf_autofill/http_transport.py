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

"""HTTP transport runner with port conflict detection and graceful shutdown.

FastMCP's built-in ``mcp.run(transport='streamable-http')`` creates a uvicorn
server but does not pre-check whether the port is available and does not set
a graceful shutdown timeout.  This module provides both, and mounts one extra
route next to the MCP endpoint:

- ``check_port_available()`` fails fast with a clear error instead of a
  cryptic uvicorn traceback when the port is already bound.
- ``GET /api/forms/proxy-pdf?url=...`` relays a remote template so that a
  browser client can load it from the same origin.
- ``start_http()`` runs uvicorn with ``timeout_graceful_shutdown`` so
  in-flight requests are given time to complete on Ctrl-C.
"""

import errno
import logging
import socket
import sys
from urllib.parse import urlparse

import anyio
import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from pdf_autofill.errors import TemplateLoadError
from pdf_autofill.loader import HttpTransport, Transport
from pdf_autofill.mcp_app import mcp

logger = logging.getLogger(__name__)

GRACEFUL_SHUTDOWN_TIMEOUT = 5  # seconds
PROXY_PATH = "/api/forms/proxy-pdf"

# Replaced in tests with an HttpTransport over httpx.MockTransport
relay_transport: Transport = HttpTransport()


def check_port_available(host: str, port: int) -> bool:
    """Check if *host*:*port* is available for binding.

    Returns ``True`` if the port is free, ``False`` if it is already in use
    (``errno.EADDRINUSE``).  Any other ``OSError`` is re-raised.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
        return True
    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            return False
        raise
    finally:
        sock.close()


async def _json_rpc_404_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON-RPC error body for 404 Not Found.

    Starlette's default 404 returns plain text (``text/plain``).  MCP clients
    expect JSON-RPC error bodies on all error responses so that they can
    parse failures uniformly.
    """
    return JSONResponse(
        {
            "jsonrpc": "2.0",
            "id": "server-error",
            "error": {"code": -32600, "message": "Not Found"},
        },
        status_code=404,
    )


async def proxy_pdf(request: Request) -> Response:
    """Fetch the template named by ?url= and return it as application/pdf."""
    url = request.query_params.get("url", "")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return JSONResponse(
            {"error": "url must be an absolute http or https URL"},
            status_code=400,
        )

    try:
        data = await relay_transport.fetch(url)
    except TemplateLoadError as exc:
        logger.warning("Template relay failed for %s: %s", url, exc)
        return JSONResponse({"error": str(exc)}, status_code=502)

    return Response(data, media_type="application/pdf")


def build_app() -> Starlette:
    """Starlette app serving /mcp plus the template relay route."""
    app = mcp.streamable_http_app()
    app.exception_handlers[404] = _json_rpc_404_handler
    app.router.routes.append(Route(PROXY_PATH, proxy_pdf, methods=["GET"]))
    return app


async def _run_http_async(host: str, port: int, log_level: str) -> None:
    """Start uvicorn serving the app."""
    config = uvicorn.Config(
        build_app(),
        host=host,
        port=port,
        log_level=log_level.lower(),
        timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_TIMEOUT,
    )
    server = uvicorn.Server(config)
    await server.serve()


def start_http(host: str, port: int, log_level: str = "INFO") -> None:
    """Check port availability, then start the HTTP server.

    Prints a user-friendly error and exits non-zero if the port is in use.
    Otherwise hands off to uvicorn via ``anyio.run()``.
    """
    if not check_port_available(host, port):
        print(
            f"Error: Port {port} is already in use. Try: --port {port + 1}",
            file=sys.stderr,
        )
        sys.exit(1)
    anyio.run(_run_http_async, host, port, log_level)
