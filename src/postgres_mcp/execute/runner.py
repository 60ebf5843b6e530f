"""Execution flow for the query tool and the catalog operations.

Small, dependency-injected functions that:
- Gate client-supplied SQL through the statement classifier
- Execute allowed statements through the connection manager
- Resolve table-detail requests from untrusted schema/table names

Blocking; callers run them on worker threads.
"""

from __future__ import annotations

from fastmcp.utilities.logging import get_logger

from postgres_mcp.errors import QueryValidationError
from postgres_mcp.models import QueryRow, TableDetail, TableIdentity
from postgres_mcp.services.connection_manager import ConnectionManager
from postgres_mcp.sql_safety import QueryValidator

_logger = get_logger(__name__)

MAX_QUERY_DISPLAY = 100


def preview_sql(sql: str) -> str:
    """Single-line, truncated rendition of ``sql`` for logs."""
    flat = " ".join(sql.split())
    return flat[:MAX_QUERY_DISPLAY] + ("..." if len(flat) > MAX_QUERY_DISPLAY else "")


def run_query(sql: str, *, validator: QueryValidator, manager: ConnectionManager) -> list[QueryRow]:
    """Classify ``sql`` and execute it only when allowed.

    Raises:
        QueryValidationError: If the statement is empty or rejected
        DatabaseError: If execution fails
    """
    if not sql or not sql.strip():
        msg = "SQL query cannot be empty"
        raise QueryValidationError(msg)

    classification = validator.validate(sql)
    _logger.info("query (%s): %s", classification.keyword, preview_sql(sql))
    return manager.execute_query(sql)


def run_list_tables(*, manager: ConnectionManager) -> list[TableIdentity]:
    tables = manager.list_tables()
    _logger.info("Listed %d tables", len(tables))
    return tables


def run_table_detail(schema: str, table: str, *, manager: ConnectionManager) -> TableDetail:
    """Fetch a table's columns and sample rows.

    Raises:
        QueryValidationError: If either name is blank
        DatabaseError: ``TABLE_NOT_FOUND`` or other database failures
    """
    if not schema or not table:
        msg = "Schema and table parameters are required"
        raise QueryValidationError(msg)
    return manager.get_table_detail(schema, table)
