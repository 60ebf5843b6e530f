"""Query execution package.

Exports the runners and the FastMCP registration helper.
"""

from __future__ import annotations

from .mcp_tools import register_query_tools
from .runner import run_list_tables, run_query, run_table_detail

__all__ = [
    "register_query_tools",
    "run_list_tables",
    "run_query",
    "run_table_detail",
]
