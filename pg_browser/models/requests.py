from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TablesRequest(BaseModel):
    postgres_url: str | None = None

    model_config = ConfigDict(extra="ignore")


class TableDataRequest(BaseModel):
    postgres_url: str | None = None
    table_name: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)
    sort_column: str | None = None
    sort_direction: str | None = "asc"
    where_clause: str | None = None

    model_config = ConfigDict(extra="ignore")


class UpdateCellRequest(BaseModel):
    postgres_url: str | None = None
    table_name: str | None = None
    column_name: str | None = None
    row_index: int | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)
    new_value: Any = None
    sort_column: str | None = None
    sort_direction: str | None = None
    where_clause: str | None = None

    model_config = ConfigDict(extra="ignore")


class TableEntry(BaseModel):
    table_name: str


class TablesResponse(BaseModel):
    tables: list[TableEntry]


class TableDataResponse(BaseModel):
    columns: list[str]
    rows: list[list[Any]]
    total_rows: int
    query: str


class UpdateCellResponse(BaseModel):
    success: bool = True
