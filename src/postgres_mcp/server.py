"""FastMCP server implementation for postgres-mcp."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastmcp import FastMCP
from fastmcp.utilities.logging import get_logger
from starlette.requests import Request
from starlette.responses import JSONResponse

from postgres_mcp.execute.mcp_tools import register_query_tools
from postgres_mcp.services.config_service import ServerConfig
from postgres_mcp.services.connection_manager import ConnectionManager
from postgres_mcp.services.state import PoolPhase
from postgres_mcp.sql_safety import QueryValidator
from postgres_mcp.tracker.mcp_tools import register_tracker_tools
from postgres_mcp.tracker.service import TrackerService

# Configure a module-level logger for local server logs.
_logger = get_logger(__name__)

SERVER_NAME = "postgres-mcp"


def create_server(config: ServerConfig, *, manager: ConnectionManager | None = None) -> FastMCP:
    """Build the MCP server with all database tools and resources.

    Shared by the stdio and HTTP transports. The connection pool is started in
    the server lifespan and drained on shutdown.
    """
    pool = manager or ConnectionManager(config)
    validator = QueryValidator(config.allow_write_ops)
    tracker = TrackerService(pool)

    # -- Lifespan: connection pool ----------------------------------------------
    @asynccontextmanager
    async def lifespan(_mcp_instance: FastMCP) -> AsyncGenerator[None]:
        _logger.info("Starting connection pool during lifespan startup")
        await asyncio.to_thread(pool.start)
        try:
            yield
        finally:
            _logger.info("Closing connection pool during lifespan shutdown")
            await asyncio.to_thread(pool.close)

    mcp = FastMCP(
        name=SERVER_NAME,
        instructions=(
            "Database access over the Model Context Protocol: run SQL (read-only unless "
            "write operations are enabled), list tables, inspect a table's columns and "
            "sample rows, and create or update rows in the issues and features tables."
        ),
        lifespan=lifespan,
    )

    # -- Tool Registration -----------------------------------------------------
    register_query_tools(mcp, manager=pool, validator=validator)
    register_tracker_tools(mcp, tracker=tracker)

    # -- Health Check ----------------------------------------------------------
    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(_request: Request) -> JSONResponse:  # pyright: ignore[reportUnusedFunction]
        state = pool.state()
        healthy = state.phase is PoolPhase.READY
        return JSONResponse(
            {
                "status": "healthy" if healthy else "unhealthy",
                "service": SERVER_NAME,
                "pool": state.phase.name.lower(),
                "active_leases": state.active_leases,
            },
            status_code=200 if healthy else 503,
        )

    _ = health_check
    return mcp
