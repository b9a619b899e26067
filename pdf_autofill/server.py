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

"""Command-line entry point: serve the MCP tools over stdio or HTTP."""

from __future__ import annotations

import argparse
import logging
import os

from pdf_autofill.config import CONFIG_ENV, config_from_env
from pdf_autofill.http_transport import start_http
from pdf_autofill.mcp_app import mcp

import pdf_autofill.tools_extract  # noqa: F401 -- trigger tool registration
import pdf_autofill.tools_write  # noqa: F401

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="PDF template auto-fill MCP server.")
    parser.add_argument(
        "--transport", choices=("stdio", "http"), default="stdio",
        help="MCP transport (default: stdio).",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help="HTTP bind host.")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="HTTP bind port.")
    parser.add_argument(
        "--config",
        help=f"JSON config with the lookup tables (overrides ${CONFIG_ENV}).",
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Root logger level, also passed to uvicorn (default: INFO).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.config:
        os.environ[CONFIG_ENV] = args.config
    # Fail at startup rather than on the first tool call
    config = config_from_env()
    logger.info(
        "Config loaded: %d field names, %d tokens, %d choice groups",
        len(config.field_names), len(config.tokens), len(config.choice_groups),
    )

    if args.transport == "http":
        start_http(args.host, args.port, args.log_level)
    else:
        mcp.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
