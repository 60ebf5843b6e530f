"""Configuration service for postgres-mcp.

This module provides configuration management for the postgres-mcp server.
It centralizes environment variable handling and produces a single immutable
`ServerConfig` shared by the statement classifier and the connection manager.
Invalid or missing values fail fast with `ConfigurationError`.
"""

from __future__ import annotations

from collections.abc import Mapping
import os
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError
import sqlalchemy as sa
from sqlalchemy.exc import ArgumentError

from postgres_mcp.errors import ConfigurationError

_TRUE_VALUES: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


class ServerConfig(BaseModel):
    """Immutable server configuration."""

    model_config = ConfigDict(frozen=True)

    database_url: str = Field(min_length=1, description="SQLAlchemy/libpq connection URL")
    allow_write_ops: bool = Field(
        default=False, description="Permit data-modifying statements through the query tool"
    )
    max_connections: int = Field(default=10, ge=1, description="Pool size")
    connection_timeout: float = Field(
        default=30.0, gt=0, description="Seconds to wait for a connection (connect and pool)"
    )
    statement_timeout: int = Field(
        default=30000, ge=0, description="Server-side statement timeout in milliseconds; 0 disables"
    )
    prepare_statements: bool = Field(default=True, description="Use server-side prepared statements")
    debug: bool = Field(default=False, description="Verbose logging")
    ssl_root_cert_path: str | None = Field(
        default=None, description="Root certificate used to validate the server certificate"
    )
    require_ssl: bool = Field(default=False, description="Fail rather than connect without TLS")
    ssl_reject_unauthorized: bool = Field(
        default=True, description="Validate the server certificate; False skips validation"
    )
    fetch_types: bool = Field(
        default=True, description="Look up extension types (e.g. hstore) when connecting"
    )


# Environment variable -> ServerConfig field
ENV_VARS: Final[dict[str, str]] = {
    "DATABASE_URL": "database_url",
    "DANGEROUSLY_ALLOW_WRITE_OPS": "allow_write_ops",
    "POSTGRES_MCP_MAX_CONNECTIONS": "max_connections",
    "POSTGRES_MCP_CONNECTION_TIMEOUT": "connection_timeout",
    "POSTGRES_MCP_STATEMENT_TIMEOUT": "statement_timeout",
    "POSTGRES_MCP_PREPARE_STATEMENTS": "prepare_statements",
    "POSTGRES_MCP_DEBUG": "debug",
    "POSTGRES_MCP_SSL_ROOT_CERT": "ssl_root_cert_path",
    "POSTGRES_MCP_REQUIRE_SSL": "require_ssl",
    "POSTGRES_MCP_SSL_REJECT_UNAUTHORIZED": "ssl_reject_unauthorized",
    "POSTGRES_MCP_FETCH_TYPES": "fetch_types",
}

_BOOL_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "allow_write_ops",
        "prepare_statements",
        "debug",
        "require_ssl",
        "ssl_reject_unauthorized",
        "fetch_types",
    }
)


class ConfigService:
    """Service for loading and validating configuration."""

    @staticmethod
    def load_config(environ: Mapping[str, str] | None = None) -> ServerConfig:
        """Build a `ServerConfig` from environment variables.

        Args:
            environ: Mapping to read from; defaults to ``os.environ``

        Returns:
            Validated, immutable configuration

        Raises:
            ConfigurationError: If a required value is missing or any value is invalid
        """
        env = os.environ if environ is None else environ

        database_url = env.get("DATABASE_URL", "").strip()
        if not database_url:
            msg = "DATABASE_URL environment variable not set"
            raise ConfigurationError(msg)

        values: dict[str, object] = {}
        for var, field in ENV_VARS.items():
            raw = env.get(var)
            if raw is None or raw.strip() == "":
                continue
            raw = raw.strip()
            values[field] = parse_bool(var, raw) if field in _BOOL_FIELDS else raw

        try:
            config = ServerConfig.model_validate(values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{_env_name(str(err['loc'][0]))}: {err['msg']}" for err in exc.errors()
            )
            msg = f"Invalid configuration: {problems}"
            raise ConfigurationError(msg) from exc

        ConfigService.validate_config(config)
        return config

    @staticmethod
    def validate_config(config: ServerConfig) -> None:
        """Cross-field checks that cannot be expressed as field constraints.

        Raises:
            ConfigurationError: If the URL cannot be parsed or the root
                certificate file does not exist
        """
        try:
            sa.engine.make_url(config.database_url)
        except ArgumentError as exc:
            msg = f"DATABASE_URL is not a valid database URL: {exc}"
            raise ConfigurationError(msg) from exc

        if config.ssl_root_cert_path and not Path(config.ssl_root_cert_path).is_file():
            msg = f"SSL root certificate not found: {config.ssl_root_cert_path}"
            raise ConfigurationError(msg)


def parse_bool(name: str, raw: str) -> bool:
    """Parse a boolean environment value strictly."""
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    msg = f"{name} must be a boolean (true/false), got {raw!r}"
    raise ConfigurationError(msg)


def _env_name(field: str) -> str:
    for var, mapped in ENV_VARS.items():
        if mapped == field:
            return var
    return field
