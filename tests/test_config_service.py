from __future__ import annotations

from pathlib import Path

import pytest

from postgres_mcp.errors import ConfigurationError
from postgres_mcp.services.config_service import ConfigService, ServerConfig, parse_bool

URL = "postgresql://user@localhost/app"


def test_defaults() -> None:
    config = ConfigService.load_config({"DATABASE_URL": URL})
    assert config == ServerConfig(database_url=URL)
    assert config.allow_write_ops is False
    assert config.max_connections == 10
    assert config.connection_timeout == 30.0
    assert config.statement_timeout == 30000
    assert config.prepare_statements is True
    assert config.require_ssl is False
    assert config.ssl_reject_unauthorized is True
    assert config.fetch_types is True


def test_overrides_from_environment() -> None:
    config = ConfigService.load_config(
        {
            "DATABASE_URL": URL,
            "DANGEROUSLY_ALLOW_WRITE_OPS": "TRUE",
            "POSTGRES_MCP_MAX_CONNECTIONS": "4",
            "POSTGRES_MCP_CONNECTION_TIMEOUT": "2.5",
            "POSTGRES_MCP_STATEMENT_TIMEOUT": "0",
            "POSTGRES_MCP_PREPARE_STATEMENTS": "off",
            "POSTGRES_MCP_REQUIRE_SSL": "yes",
            "POSTGRES_MCP_SSL_REJECT_UNAUTHORIZED": "0",
            "POSTGRES_MCP_FETCH_TYPES": "false",
            "POSTGRES_MCP_DEBUG": "1",
        }
    )
    assert config.allow_write_ops is True
    assert config.max_connections == 4
    assert config.connection_timeout == 2.5
    assert config.statement_timeout == 0
    assert config.prepare_statements is False
    assert config.require_ssl is True
    assert config.ssl_reject_unauthorized is False
    assert config.fetch_types is False
    assert config.debug is True


def test_blank_values_fall_back_to_defaults() -> None:
    config = ConfigService.load_config({"DATABASE_URL": URL, "POSTGRES_MCP_MAX_CONNECTIONS": " "})
    assert config.max_connections == 10


@pytest.mark.parametrize("env", [{}, {"DATABASE_URL": ""}, {"DATABASE_URL": "   "}])
def test_missing_database_url(env: dict[str, str]) -> None:
    with pytest.raises(ConfigurationError, match="DATABASE_URL environment variable not set"):
        ConfigService.load_config(env)


@pytest.mark.parametrize(
    ("var", "value"),
    [
        ("POSTGRES_MCP_MAX_CONNECTIONS", "0"),
        ("POSTGRES_MCP_MAX_CONNECTIONS", "ten"),
        ("POSTGRES_MCP_CONNECTION_TIMEOUT", "-1"),
        ("POSTGRES_MCP_CONNECTION_TIMEOUT", "0"),
        ("POSTGRES_MCP_STATEMENT_TIMEOUT", "1.5"),
    ],
)
def test_invalid_numbers_name_the_variable(var: str, value: str) -> None:
    with pytest.raises(ConfigurationError, match=var):
        ConfigService.load_config({"DATABASE_URL": URL, var: value})


def test_invalid_boolean_is_not_silently_false() -> None:
    with pytest.raises(ConfigurationError, match="DANGEROUSLY_ALLOW_WRITE_OPS must be a boolean"):
        ConfigService.load_config({"DATABASE_URL": URL, "DANGEROUSLY_ALLOW_WRITE_OPS": "maybe"})


def test_parse_bool_accepts_common_spellings() -> None:
    assert parse_bool("X", " On ") is True
    assert parse_bool("X", "NO") is False


def test_unparseable_url() -> None:
    with pytest.raises(ConfigurationError, match="not a valid database URL"):
        ConfigService.load_config({"DATABASE_URL": "not a url"})


def test_root_cert_must_exist(tmp_path: Path) -> None:
    missing = tmp_path / "root.crt"
    env = {"DATABASE_URL": URL, "POSTGRES_MCP_SSL_ROOT_CERT": str(missing)}
    with pytest.raises(ConfigurationError, match="SSL root certificate not found"):
        ConfigService.load_config(env)

    missing.write_text("-----BEGIN CERTIFICATE-----\n")
    assert ConfigService.load_config(env).ssl_root_cert_path == str(missing)


def test_config_is_frozen() -> None:
    config = ServerConfig(database_url=URL)
    with pytest.raises(ValueError, match="frozen"):
        config.max_connections = 1  # type: ignore[misc]
