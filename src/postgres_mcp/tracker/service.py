"""Tracker service: guarded create/update access to issues and features.

Statements are fixed templates built in `statements`; client values only
reach the database through parameter binding, so the statement classifier is
not involved on these paths.
"""

from __future__ import annotations

import logging

from fastmcp.utilities.logging import get_logger

from postgres_mcp.errors import NOT_FOUND, DatabaseError
from postgres_mcp.models import QueryRow
from postgres_mcp.services.connection_manager import ConnectionManager

from .models import FeatureCreate, FeatureUpdate, IssueCreate, IssueUpdate
from .statements import (
    FEATURES_TABLE,
    FETCH_NEXT_FEATURE_SQL,
    FETCH_NEXT_ISSUE_SQL,
    ISSUES_TABLE,
    Statement,
    build_insert,
    build_partial_update,
)


class TrackerService:
    """Create, update and pick the next work item from the tracker tables."""

    def __init__(self, manager: ConnectionManager, logger: logging.Logger | None = None) -> None:
        self.manager = manager
        self._logger = logger or get_logger(__name__)

    # ---- issues ---------------------------------------------------------------
    def create_issue(self, issue: IssueCreate) -> QueryRow:
        row = self._run_single(build_insert(ISSUES_TABLE, issue.model_dump()))
        self._logger.info("Created issue id=%s number=%s", row.get("id"), row.get("number"))
        return row

    def update_issue(self, issue_id: int, changes: IssueUpdate) -> QueryRow:
        return self._update(ISSUES_TABLE, "Issue", issue_id, changes)

    def fetch_next_issue(self) -> QueryRow | None:
        """Highest-priority open issue (critical > high > medium > low), oldest first."""
        rows = self.manager.execute_query(FETCH_NEXT_ISSUE_SQL)
        return rows[0] if rows else None

    # ---- features -------------------------------------------------------------
    def create_feature(self, feature: FeatureCreate) -> QueryRow:
        row = self._run_single(build_insert(FEATURES_TABLE, feature.model_dump()))
        self._logger.info("Created feature id=%s number=%s", row.get("id"), row.get("number"))
        return row

    def update_feature(self, feature_id: int, changes: FeatureUpdate) -> QueryRow:
        return self._update(FEATURES_TABLE, "Feature", feature_id, changes)

    def fetch_next_feature(self) -> QueryRow | None:
        """Highest-priority open feature (high > medium > low), oldest first."""
        rows = self.manager.execute_query(FETCH_NEXT_FEATURE_SQL)
        return rows[0] if rows else None

    # ---- internals ------------------------------------------------------------
    def _update(
        self, table: str, label: str, record_id: int, changes: IssueUpdate | FeatureUpdate
    ) -> QueryRow:
        statement = build_partial_update(table, record_id, changes.changes())
        rows = self.manager.execute_parameterized_query(statement.sql, statement.parameters)
        if not rows:
            msg = f"{label} with id {record_id} not found"
            raise DatabaseError(msg, code=NOT_FOUND)
        self._logger.info("Updated %s id=%s", label.lower(), record_id)
        return rows[0]

    def _run_single(self, statement: Statement) -> QueryRow:
        rows = self.manager.execute_parameterized_query(statement.sql, statement.parameters)
        if not rows:
            msg = "Statement returned no rows"
            raise DatabaseError(msg)
        return rows[0]
