"""Pydantic models for database introspection results.

Minimal, task-focused models returned by the connection manager and rendered
by the tool layer.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

QueryRow = dict[str, Any]


class TableIdentity(BaseModel):
    """A (schema, table) pair naming one relation in the catalog."""

    table_schema: str = Field(description="Schema containing the table")
    table_name: str = Field(description="Table name")

    @property
    def key(self) -> str:
        return f"{self.table_schema}.{self.table_name}"


class ColumnInfo(BaseModel):
    """Catalog metadata for one column."""

    column_name: str
    data_type: str
    is_nullable: bool
    column_default: str | None = Field(
        default=None, description="Default expression, None when the column has none"
    )


class TableSchema(BaseModel):
    """Table identity plus its columns in ordinal order."""

    table_schema: str
    table_name: str
    columns: list[ColumnInfo] = Field(default_factory=list)


class TableDetail(BaseModel):
    """Table schema plus a small, unordered sample of rows."""

    table: TableSchema
    sample_rows: list[QueryRow] = Field(default_factory=list)
