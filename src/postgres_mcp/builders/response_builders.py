"""Response builders for postgres-mcp.

Every tool and resource produces one internal `OperationResult`; two thin
renderers turn it into the text body of a tool response or a resource
response. Success/error branching lives here once instead of in each endpoint.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import json
import logging
from typing import Any, Literal

from mcp.types import TextContent
from pydantic import BaseModel, Field, ValidationError
from pydantic_core import to_jsonable_python

from postgres_mcp.errors import DatabaseError, PostgresMcpError


class OperationResult(BaseModel):
    """Outcome of one tool or resource operation."""

    status: Literal["ok", "error"] = Field(default="ok", description="Overall status of the call")
    data: Any = Field(default=None, description="Natural result of the operation")
    error: str | None = Field(default=None, description="Human-readable error message")
    error_code: str | None = Field(default=None, description="Driver or local error code")

    @classmethod
    def success(cls, data: Any) -> OperationResult:
        return cls(status="ok", data=data)

    @classmethod
    def failure(cls, message: str, code: str | None = None) -> OperationResult:
        return cls(status="error", error=message, error_code=code)

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def capture(operation: str, fn: Callable[[], Any], logger: logging.Logger) -> OperationResult:
    """Run ``fn`` and fold any failure into an error `OperationResult`."""
    try:
        data = fn()
    except DatabaseError as exc:
        logger.error("%s error [%s]: %s", operation, exc.code, exc)
        return OperationResult.failure(str(exc), exc.code)
    except PostgresMcpError as exc:
        logger.error("%s error: %s", operation, exc)
        return OperationResult.failure(str(exc))
    except ValidationError as exc:
        message = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
            for err in exc.errors()
        )
        logger.error("%s validation error: %s", operation, message)
        return OperationResult.failure(f"Invalid input: {message}")
    except Exception as exc:  # noqa: BLE001 - nothing escapes the tool boundary
        logger.exception("%s failed unexpectedly", operation)
        return OperationResult.failure(f"Unexpected error: {exc}")
    return OperationResult.success(data)


async def run_operation(
    operation: str, fn: Callable[[], Any], logger: logging.Logger
) -> OperationResult:
    """Run blocking ``fn`` on a worker thread and capture its outcome."""
    return await asyncio.to_thread(capture, operation, fn, logger)


def _payload(result: OperationResult) -> Any:
    if result.ok:
        return to_jsonable_python(result.data, fallback=str)
    body: dict[str, str] = {"error": result.error or "Unknown error occurred"}
    if result.error_code:
        body["code"] = result.error_code
    return body


def _render_text(result: OperationResult) -> str:
    return json.dumps(_payload(result), indent=2, ensure_ascii=False)


def render_tool_response(result: OperationResult) -> list[TextContent]:
    """Render a tool response: a single JSON text content block."""
    return [TextContent(type="text", text=_render_text(result))]


def render_resource_response(result: OperationResult) -> str:
    """Render the body of a resource read; the server attaches the URI."""
    return _render_text(result)
