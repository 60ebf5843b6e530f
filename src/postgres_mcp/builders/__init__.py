"""Response builders package for postgres-mcp.

Turns operation outcomes into tool and resource response bodies.
"""

from .response_builders import (
    OperationResult,
    capture,
    render_resource_response,
    render_tool_response,
    run_operation,
)

__all__ = [
    "OperationResult",
    "capture",
    "render_resource_response",
    "render_tool_response",
    "run_operation",
]
