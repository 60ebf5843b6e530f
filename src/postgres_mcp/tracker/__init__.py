"""Issue and feature tracker package.

Guarded create/update operations against the predefined ``issues`` and
``features`` tables, built from fixed statement templates with bound values.
"""

from __future__ import annotations

from .mcp_tools import register_tracker_tools
from .models import FeatureCreate, FeatureUpdate, IssueCreate, IssueUpdate
from .service import TrackerService
from .statements import Statement, build_insert, build_partial_update

__all__ = [
    "FeatureCreate",
    "FeatureUpdate",
    "IssueCreate",
    "IssueUpdate",
    "Statement",
    "TrackerService",
    "build_insert",
    "build_partial_update",
    "register_tracker_tools",
]
