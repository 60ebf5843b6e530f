"""Exception hierarchy for postgres-mcp.

Exception Categories:
- ConfigurationError: invalid or missing startup configuration (fatal at startup)
- QueryValidationError: a statement or structured input was rejected before
  reaching the database (client-caused, never retried)
- DatabaseError: connectivity, pool, constraint, timeout and not-found failures
  reported by the database layer, carrying the driver's error code when known
"""

from __future__ import annotations

from typing import Final

# Local error codes used when the driver does not provide a SQLSTATE.
POOL_TIMEOUT: Final[str] = "POOL_TIMEOUT"
POOL_NOT_READY: Final[str] = "POOL_NOT_READY"
POOL_CLOSED: Final[str] = "POOL_CLOSED"
CONNECTION_FAILED: Final[str] = "CONNECTION_FAILED"
TABLE_NOT_FOUND: Final[str] = "TABLE_NOT_FOUND"
NOT_FOUND: Final[str] = "NOT_FOUND"
DATABASE_ERROR: Final[str] = "DATABASE_ERROR"


class PostgresMcpError(Exception):
    """Base exception for all postgres-mcp failures."""


class ConfigurationError(PostgresMcpError):
    """Raised when startup configuration is missing or invalid."""


class QueryValidationError(PostgresMcpError):
    """Raised when a statement or tool input fails validation."""


class DatabaseError(PostgresMcpError):
    """Raised for failures reported by the database or the connection pool.

    Attributes:
        code: Driver SQLSTATE (e.g. ``23505``) or a local code such as
            ``POOL_TIMEOUT``
        detail: Optional driver-provided detail text
    """

    def __init__(self, message: str, code: str | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.detail = detail

    def to_dict(self) -> dict[str, str | None]:
        """Return structured error data for callers that render responses."""
        return {"message": str(self), "code": self.code, "detail": self.detail}
