from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import sqlalchemy as sa

from postgres_mcp.services.config_service import ServerConfig
from postgres_mcp.services.connection_manager import ConnectionManager

ISSUES_DDL = """
CREATE TABLE issues (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    number INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    priority TEXT NOT NULL DEFAULT 'medium',
    status TEXT NOT NULL DEFAULT 'backlog',
    assigned_to TEXT,
    feature_id INTEGER,
    sprint_id INTEGER,
    opened_by TEXT,
    impact_analysis TEXT,
    resolution TEXT,
    testing_status TEXT,
    user_tested BOOLEAN,
    user_test_result TEXT,
    user_test_assessment TEXT,
    resolved_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

FEATURES_DDL = """
CREATE TABLE features (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    number INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    priority TEXT NOT NULL DEFAULT 'medium',
    status TEXT NOT NULL DEFAULT 'backlog',
    assigned_to TEXT,
    sprint_id INTEGER,
    opened_by TEXT,
    impact_analysis TEXT,
    resolution TEXT,
    testing_status TEXT,
    user_tested BOOLEAN,
    user_test_result TEXT,
    user_test_assessment TEXT,
    resolved_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite+pysqlite:///{tmp_path / 'db.sqlite'}"


@pytest.fixture
def make_config(sqlite_url: str) -> Callable[..., ServerConfig]:
    def _make(**overrides: Any) -> ServerConfig:
        values: dict[str, Any] = {"database_url": sqlite_url, "connection_timeout": 2.0}
        values.update(overrides)
        return ServerConfig(**values)

    return _make


@pytest.fixture
def make_manager(
    make_config: Callable[..., ServerConfig],
) -> Iterator[Callable[..., ConnectionManager]]:
    created: list[ConnectionManager] = []

    def _make(**overrides: Any) -> ConnectionManager:
        manager = ConnectionManager(make_config(**overrides))
        manager.start()
        created.append(manager)
        return manager

    yield _make
    for manager in created:
        manager.close(drain_timeout=0)


@pytest.fixture
def manager(make_manager: Callable[..., ConnectionManager]) -> ConnectionManager:
    return make_manager(allow_write_ops=True)


@pytest.fixture
def tracker_db(sqlite_url: str) -> str:
    engine = sa.create_engine(sqlite_url)
    with engine.begin() as conn:
        conn.execute(sa.text(ISSUES_DDL))
        conn.execute(sa.text(FEATURES_DDL))
    engine.dispose()
    return sqlite_url
