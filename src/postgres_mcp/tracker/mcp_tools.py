"""MCP tool registration for the issue/feature tracker.

Tools validate input against the tracker models before anything reaches the
connection manager, then delegate to `TrackerService`.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastmcp import FastMCP
from fastmcp.utilities.logging import get_logger
from mcp.types import TextContent
from pydantic import Field

from postgres_mcp.builders import render_tool_response, run_operation
from postgres_mcp.models import QueryRow

from .models import (
    FeatureCreate,
    FeaturePriority,
    FeatureStatus,
    FeatureUpdate,
    IssueCreate,
    IssuePriority,
    IssueStatus,
    IssueUpdate,
)
from .service import TrackerService

_logger = get_logger(__name__)

RecordId = Annotated[int, Field(ge=1, description="Numeric id of the row to update")]


def _created(kind: str, row: QueryRow) -> dict[str, Any]:
    return {"message": f"{kind.capitalize()} created successfully", kind: row}


def _updated(kind: str, row: QueryRow) -> dict[str, Any]:
    return {"message": f"{kind.capitalize()} updated successfully", kind: row}


def _next(kind: str, row: QueryRow | None) -> QueryRow | dict[str, str]:
    return row if row is not None else {"message": f"No pending {kind}s found"}


def register_tracker_tools(mcp: FastMCP, *, tracker: TrackerService) -> None:
    """Register create/update/fetch-next tools for issues and features."""

    @mcp.tool
    async def write_issue(  # noqa: PLR0913  # pyright: ignore[reportUnusedFunction]
        title: Annotated[str, Field(description="Issue title")],
        description: Annotated[str, Field(description="Issue description")],
        priority: IssuePriority = "medium",
        status: IssueStatus = "backlog",
        assigned_to: str | None = None,
        feature_id: int | None = None,
        sprint_id: int | None = None,
        opened_by: str | None = None,
        impact_analysis: str | None = None,
    ) -> list[TextContent]:
        """Create a new issue in the issues table; it receives the next issue number."""

        def _create() -> dict[str, Any]:
            issue = IssueCreate(
                title=title,
                description=description,
                priority=priority,
                status=status,
                assigned_to=assigned_to,
                feature_id=feature_id,
                sprint_id=sprint_id,
                opened_by=opened_by,
                impact_analysis=impact_analysis,
            )
            return _created("issue", tracker.create_issue(issue))

        return render_tool_response(await run_operation("write_issue", _create, _logger))

    @mcp.tool
    async def update_issue(  # pyright: ignore[reportUnusedFunction]
        id: RecordId,  # noqa: A002
        fields: Annotated[
            IssueUpdate,
            Field(
                description=(
                    "Only the fields present are changed. Setting status to 'done' also "
                    "records the resolution time; assigned_to may be null to unassign."
                )
            ),
        ],
    ) -> list[TextContent]:
        """Update an existing issue with a partial set of fields."""
        result = await run_operation(
            "update_issue", lambda: _updated("issue", tracker.update_issue(id, fields)), _logger
        )
        return render_tool_response(result)

    @mcp.tool
    async def fetch_next_issue() -> list[TextContent]:  # pyright: ignore[reportUnusedFunction]
        """Fetch the highest-priority issue in 'todo' or 'backlog', oldest first."""
        result = await run_operation(
            "fetch_next_issue", lambda: _next("issue", tracker.fetch_next_issue()), _logger
        )
        return render_tool_response(result)

    @mcp.tool
    async def write_feature(  # noqa: PLR0913  # pyright: ignore[reportUnusedFunction]
        title: Annotated[str, Field(description="Feature title")],
        description: Annotated[str, Field(description="Feature description")],
        priority: FeaturePriority = "medium",
        status: FeatureStatus = "backlog",
        assigned_to: str | None = None,
        sprint_id: int | None = None,
        opened_by: str | None = None,
        impact_analysis: str | None = None,
    ) -> list[TextContent]:
        """Create a new feature in the features table; it receives the next feature number."""

        def _create() -> dict[str, Any]:
            feature = FeatureCreate(
                title=title,
                description=description,
                priority=priority,
                status=status,
                assigned_to=assigned_to,
                sprint_id=sprint_id,
                opened_by=opened_by,
                impact_analysis=impact_analysis,
            )
            return _created("feature", tracker.create_feature(feature))

        return render_tool_response(await run_operation("write_feature", _create, _logger))

    @mcp.tool
    async def update_feature(  # pyright: ignore[reportUnusedFunction]
        id: RecordId,  # noqa: A002
        fields: Annotated[
            FeatureUpdate,
            Field(
                description=(
                    "Only the fields present are changed. Setting status to 'done' also "
                    "records the resolution time; assigned_to may be null to unassign."
                )
            ),
        ],
    ) -> list[TextContent]:
        """Update an existing feature with a partial set of fields."""
        result = await run_operation(
            "update_feature",
            lambda: _updated("feature", tracker.update_feature(id, fields)),
            _logger,
        )
        return render_tool_response(result)

    @mcp.tool
    async def fetch_next_feature() -> list[TextContent]:  # pyright: ignore[reportUnusedFunction]
        """Fetch the highest-priority feature in 'todo' or 'backlog', oldest first."""
        result = await run_operation(
            "fetch_next_feature", lambda: _next("feature", tracker.fetch_next_feature()), _logger
        )
        return render_tool_response(result)

    _ = (
        write_issue,
        update_issue,
        fetch_next_issue,
        write_feature,
        update_feature,
        fetch_next_feature,
    )
