"""postgres-mcp package.

Provides a Model Context Protocol (FastMCP) server that exposes a relational
database to tool-calling clients: guarded SQL execution, table listing and
inspection, and create/update operations on the issues and features tables.
"""

from postgres_mcp.errors import (
    ConfigurationError,
    DatabaseError,
    PostgresMcpError,
    QueryValidationError,
)
from postgres_mcp.models import ColumnInfo, TableDetail, TableIdentity, TableSchema
from postgres_mcp.services import ConfigService, ConnectionManager, ServerConfig
from postgres_mcp.sql_safety import ClassificationResult, QueryValidator, classify

__all__ = [  # noqa: RUF022
    # Core models
    "ColumnInfo",
    "TableDetail",
    "TableIdentity",
    "TableSchema",
    # Errors
    "ConfigurationError",
    "DatabaseError",
    "PostgresMcpError",
    "QueryValidationError",
    # Services
    "ConfigService",
    "ConnectionManager",
    "ServerConfig",
    # Statement safety
    "ClassificationResult",
    "QueryValidator",
    "classify",
]
