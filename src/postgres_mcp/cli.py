"""Command-line entrypoint for the postgres-mcp server.

Loads ``.env`` and the environment configuration, picks the process-wide log
level once for the chosen transport (stdio keeps logging to errors so the
protocol stream stays clean), then runs the FastMCP server.
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
import sys
from typing import Literal

import dotenv
from fastmcp.utilities.logging import configure_logging, get_logger

from postgres_mcp.errors import ConfigurationError
from postgres_mcp.server import create_server
from postgres_mcp.services.config_service import ConfigService

# Configure a module-level logger for local server logs.
_logger = get_logger(__name__)

Transport = Literal["stdio", "http"]
LogLevel = Literal["DEBUG", "INFO", "ERROR"]


def log_level_for(transport: Transport, *, debug: bool) -> LogLevel:
    """Choose the process-wide log level for a transport."""
    if debug:
        return "DEBUG"
    if transport == "stdio":
        return "ERROR"
    return "INFO"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="postgres-mcp",
        description="Model Context Protocol server for a PostgreSQL database.",
    )
    parser.add_argument(
        "--transport",
        choices=("stdio", "http"),
        default="stdio",
        help="Protocol transport (default: stdio)",
    )
    parser.add_argument("--host", default="127.0.0.1", help="HTTP bind address")
    parser.add_argument("--port", type=int, default=8000, help="HTTP port")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Start the postgres-mcp server via CLI."""
    args = _build_parser().parse_args(argv)

    dotenv.load_dotenv()
    try:
        config = ConfigService.load_config()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)  # noqa: T201
        return 2

    configure_logging(level=log_level_for(args.transport, debug=args.debug or config.debug))

    mcp = create_server(config)
    try:
        if args.transport == "http":
            mcp.run(transport="http", host=args.host, port=args.port)
        else:
            mcp.run()
    except KeyboardInterrupt:
        _logger.info("Interrupted by user. Exiting cleanly.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
