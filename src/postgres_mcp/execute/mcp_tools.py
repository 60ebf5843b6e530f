"""MCP registration for free-form SQL and catalog access.

Tools:
- `query(sql)`: classifier-gated SQL execution
- `list_tables()` / `get_table_detail(schema, table)`

Resources:
- `postgres://tables`
- `postgres://table/{schema}/{table}`

Tools and resources share the same runners and differ only in rendering.
"""

from __future__ import annotations

from typing import Annotated
from urllib.parse import unquote

from fastmcp import FastMCP
from fastmcp.utilities.logging import get_logger
from mcp.types import TextContent
from pydantic import Field

from postgres_mcp.builders import render_resource_response, render_tool_response, run_operation
from postgres_mcp.execute.runner import run_list_tables, run_query, run_table_detail
from postgres_mcp.services.connection_manager import ConnectionManager
from postgres_mcp.sql_safety import QueryValidator

_logger = get_logger(__name__)


def register_query_tools(
    mcp: FastMCP, *, manager: ConnectionManager, validator: QueryValidator
) -> None:
    """Register the query tool and the catalog tools/resources."""

    write_note = (
        "Write statements are enabled (schema and privilege changes are still refused)."
        if validator.allow_write_ops
        else "Read-only: only SELECT, WITH, EXPLAIN and SHOW are accepted; enable writes "
        "via DANGEROUSLY_ALLOW_WRITE_OPS."
    )

    @mcp.tool(description=f"Execute a single SQL statement against the database. {write_note}")
    async def query(  # pyright: ignore[reportUnusedFunction]
        sql: Annotated[
            str,
            Field(description="One SQL statement; a single trailing semicolon is allowed."),
        ],
    ) -> list[TextContent]:
        result = await run_operation(
            "query", lambda: run_query(sql, validator=validator, manager=manager), _logger
        )
        return render_tool_response(result)

    @mcp.tool
    async def list_tables() -> list[TextContent]:  # pyright: ignore[reportUnusedFunction]
        """List all user tables as schema/table pairs, ordered by schema then table."""
        result = await run_operation(
            "list_tables", lambda: run_list_tables(manager=manager), _logger
        )
        return render_tool_response(result)

    @mcp.tool
    async def get_table_detail(  # pyright: ignore[reportUnusedFunction]
        schema: Annotated[str, Field(description="Schema name, e.g. 'public'")],
        table: Annotated[str, Field(description="Table name")],
    ) -> list[TextContent]:
        """Get column definitions and up to five sample rows for one table."""
        result = await run_operation(
            "get_table_detail",
            lambda: run_table_detail(schema, table, manager=manager),
            _logger,
        )
        return render_tool_response(result)

    @mcp.resource(
        "postgres://tables",
        name="tables",
        description="List all tables available in the connected database.",
        mime_type="application/json",
    )
    async def tables_resource() -> str:  # pyright: ignore[reportUnusedFunction]
        result = await run_operation(
            "tables resource", lambda: run_list_tables(manager=manager), _logger
        )
        return render_resource_response(result)

    @mcp.resource(
        "postgres://table/{schema}/{table}",
        name="table",
        description="Schema information and sample rows for a specific table.",
        mime_type="application/json",
    )
    async def table_resource(schema: str, table: str) -> str:  # pyright: ignore[reportUnusedFunction]
        result = await run_operation(
            "table resource",
            lambda: run_table_detail(unquote(schema), unquote(table), manager=manager),
            _logger,
        )
        return render_resource_response(result)

    _ = (query, list_tables, get_table_detail, tables_resource, table_resource)
