"""SQL statement builders for the issues and features tables.

Statements are assembled from trusted table and column names only; every value
is carried as a positional ``$n`` parameter.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import re
from typing import Any, Final

from postgres_mcp.errors import QueryValidationError

from .models import DONE_STATUS

ISSUES_TABLE: Final[str] = "issues"
FEATURES_TABLE: Final[str] = "features"
TRACKER_TABLES: Final[frozenset[str]] = frozenset({ISSUES_TABLE, FEATURES_TABLE})

NO_FIELDS_TO_UPDATE: Final[str] = "No fields to update"

_COLUMN: Final[re.Pattern[str]] = re.compile(r"^[a-z_][a-z0-9_]*$")

FETCH_NEXT_ISSUE_SQL: Final[str] = """
SELECT * FROM issues
WHERE status IN ('todo', 'backlog')
ORDER BY
  CASE priority
    WHEN 'critical' THEN 1
    WHEN 'high' THEN 2
    WHEN 'medium' THEN 3
    WHEN 'low' THEN 4
  END,
  created_at ASC
LIMIT 1
"""

FETCH_NEXT_FEATURE_SQL: Final[str] = """
SELECT * FROM features
WHERE status IN ('todo', 'backlog')
ORDER BY
  CASE priority
    WHEN 'high' THEN 1
    WHEN 'medium' THEN 2
    WHEN 'low' THEN 3
  END,
  created_at ASC
LIMIT 1
"""


@dataclass(frozen=True, slots=True)
class Statement:
    """A ``$n`` SQL template and its positional parameters."""

    sql: str
    parameters: tuple[Any, ...]


def build_insert(table: str, values: Mapping[str, Any]) -> Statement:
    """Build an INSERT ... RETURNING * that also assigns the next display number.

    The number is ``MAX(number) + 1`` evaluated inside the same statement.
    Concurrent creates can still observe the same maximum; the number is a
    display sequence, not a key.
    """
    _check_table(table)
    columns = [_check_column(name) for name in values]
    placeholders = [f"${i}" for i in range(1, len(columns) + 1)]
    sql = (
        f"INSERT INTO {table} (number, {', '.join(columns)}) "
        f"VALUES ((SELECT COALESCE(MAX(number), 0) + 1 FROM {table}), {', '.join(placeholders)}) "
        "RETURNING *"
    )
    return Statement(sql=sql, parameters=tuple(values.values()))


def build_partial_update(table: str, record_id: int, changes: Mapping[str, Any]) -> Statement:
    """Build an UPDATE ... RETURNING * touching only the supplied columns.

    Setting ``status`` to ``done`` also stamps ``resolved_at``; ``updated_at``
    is always refreshed.

    Raises:
        QueryValidationError: If ``changes`` is empty
    """
    _check_table(table)
    assignments: list[str] = []
    parameters: list[Any] = []
    for column, value in changes.items():
        parameters.append(value)
        assignments.append(f"{_check_column(column)} = ${len(parameters)}")
        if column == "status" and value == DONE_STATUS:
            assignments.append("resolved_at = CURRENT_TIMESTAMP")

    if not assignments:
        raise QueryValidationError(NO_FIELDS_TO_UPDATE)

    assignments.append("updated_at = CURRENT_TIMESTAMP")
    parameters.append(record_id)
    sql = f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ${len(parameters)} RETURNING *"
    return Statement(sql=sql, parameters=tuple(parameters))


def _check_table(table: str) -> None:
    if table not in TRACKER_TABLES:
        msg = f"Unsupported table: {table}"
        raise ValueError(msg)


def _check_column(column: str) -> str:
    if not _COLUMN.match(column):
        msg = f"Invalid column name: {column!r}"
        raise ValueError(msg)
    return column
