"""Services package for postgres-mcp.

This package contains the service classes behind the MCP tools.

Main Components:
- ConfigService: Environment configuration loading and validation
- ConnectionManager: Connection pool ownership, query execution and introspection
"""

from .config_service import ConfigService, ServerConfig
from .connection_manager import ConnectionManager
from .state import PoolPhase, PoolState

__all__ = [
    "ConfigService",
    "ConnectionManager",
    "PoolPhase",
    "PoolState",
    "ServerConfig",
]
