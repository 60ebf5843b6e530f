"""Pydantic models for issue and feature tracker operations.

Create models carry required fields and defaults. Update models are sparse:
only fields the caller actually supplied are applied, which is tracked through
pydantic's ``model_fields_set`` so that an explicit ``null`` (e.g. clearing
``assigned_to``) is distinguishable from an omitted field.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

IssueStatus = Literal["backlog", "todo", "in_progress", "done"]
IssuePriority = Literal["low", "medium", "high", "critical"]
FeatureStatus = Literal["backlog", "todo", "in_progress", "done"]
FeaturePriority = Literal["low", "medium", "high"]
TestingStatus = Literal["in_testing", "passed", "failed"]

DONE_STATUS = "done"
NULLABLE_UPDATE_FIELDS = frozenset({"assigned_to"})


class _CreateBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, description="Short title")
    description: str = Field(min_length=1, description="Full description")
    assigned_to: str | None = Field(default=None, description="Assignee")
    sprint_id: int | None = Field(default=None, description="Sprint identifier")
    opened_by: str | None = Field(default=None, description="Reporter")
    impact_analysis: str | None = Field(default=None, description="Impact analysis notes")


class IssueCreate(_CreateBase):
    """Fields for a new row in the issues table."""

    priority: IssuePriority = "medium"
    status: IssueStatus = "backlog"
    feature_id: int | None = Field(default=None, description="Related feature id")


class FeatureCreate(_CreateBase):
    """Fields for a new row in the features table."""

    priority: FeaturePriority = "medium"
    status: FeatureStatus = "backlog"


class _UpdateBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    assigned_to: str | None = Field(default=None, description="Assignee; null unassigns")
    resolution: str | None = None
    impact_analysis: str | None = None
    testing_status: TestingStatus | None = None
    user_tested: bool | None = None
    user_test_result: str | None = None
    user_test_assessment: str | None = None

    def changes(self) -> dict[str, Any]:
        """Return the explicitly supplied fields, in declaration order.

        An explicit null is kept only for nullable columns.
        """
        out: dict[str, Any] = {}
        for name in type(self).model_fields:
            if name not in self.model_fields_set:
                continue
            value = getattr(self, name)
            if value is None and name not in NULLABLE_UPDATE_FIELDS:
                continue
            out[name] = value
        return out


class IssueUpdate(_UpdateBase):
    """Sparse changes to an issue."""

    status: IssueStatus | None = None
    priority: IssuePriority | None = None


class FeatureUpdate(_UpdateBase):
    """Sparse changes to a feature."""

    status: FeatureStatus | None = None
    priority: FeaturePriority | None = None
