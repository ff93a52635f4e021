from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pg_browser.services.errors import QueryValidationError
from pg_browser.services.sql_quoting import quote_identifier, render_literal

PLACEHOLDER_PATTERN = re.compile(r"\$(\d+)")


@dataclass(frozen=True, slots=True)
class SortSpec:
    column: str | None = None
    direction: str = "asc"

    @property
    def keyword(self) -> str:
        # Anything other than exactly "desc" sorts ascending.
        return "DESC" if self.direction == "desc" else "ASC"

    def toggled(self, column: str, direction: str) -> SortSpec:
        if self.column == column:
            return SortSpec(column=column, direction="asc" if self.direction == "desc" else "desc")
        return SortSpec(column=column, direction=direction)

    def to_dict(self) -> dict[str, Any]:
        return {"column": self.column, "direction": self.direction}

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> SortSpec:
        if not payload:
            return cls()
        column = payload.get("column") or None
        return cls(column=column, direction=str(payload.get("direction") or "asc"))


@dataclass(frozen=True, slots=True)
class Pagination:
    page: int = 1
    limit: int = 20

    def __post_init__(self) -> None:
        if self.page < 1:
            raise QueryValidationError(f"Page must be at least 1 (got {self.page}).")
        if self.limit < 1:
            raise QueryValidationError(f"Limit must be positive (got {self.limit}).")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def clamped(cls, page: int, limit: int) -> Pagination:
        return cls(page=max(1, int(page)), limit=limit)


@dataclass(frozen=True, slots=True)
class CompiledQuery:
    parameterized_sql: str
    parameters: tuple[Any, ...]
    display_sql: str
    count_sql: str = field(default="")


def _scan_placeholders(sql: str, replace: Callable[[int, str], str]) -> str:
    """Rewrite `$k` tokens outside quoted regions; literal text is copied as-is."""
    output: list[str] = []
    index = 0
    length = len(sql)
    quote: str | None = None
    while index < length:
        char = sql[index]
        if quote is not None:
            output.append(char)
            if char == quote:
                quote = None
            index += 1
            continue
        if char in ("'", '"'):
            quote = char
            output.append(char)
            index += 1
            continue
        if char == "$":
            match = PLACEHOLDER_PATTERN.match(sql, index)
            if match is not None:
                output.append(replace(int(match.group(1)), match.group(0)))
                index = match.end()
                continue
        output.append(char)
        index += 1
    return "".join(output)


def render_display_sql(sql: str, parameters: Sequence[Any]) -> str:
    """Substitute each `$k` placeholder with the literal form of parameter k.

    The result is for display and history only and must never be executed.
    """

    def _substitute(position: int, token: str) -> str:
        if 1 <= position <= len(parameters):
            return render_literal(parameters[position - 1])
        return token

    return _scan_placeholders(sql, _substitute)


def to_bind_sql(sql: str) -> tuple[str, Callable[[Sequence[Any]], dict[str, Any]]]:
    """Translate `$k` placeholders into SQLAlchemy named binds.

    Every other colon is escaped so that text inside literals is never parsed
    as a bind parameter. Returns the rewritten SQL and a function mapping a
    positional parameter sequence onto the bind names.
    """
    escaped = sql.replace(":", "\\:")
    converted = _scan_placeholders(escaped, lambda position, _token: f":p_{position}")

    def _bind(parameters: Sequence[Any]) -> dict[str, Any]:
        return {f"p_{position}": value for position, value in enumerate(parameters, start=1)}

    return converted, _bind


def compile_count(table: str, filter_clause: str = "") -> str:
    sql = f"SELECT COUNT(*) FROM {quote_identifier(table)}"
    if filter_clause and filter_clause.strip():
        sql += f" WHERE {filter_clause}"
    return sql


def compile_query(
    table: str,
    filter_clause: str,
    sort: SortSpec | None,
    pagination: Pagination,
) -> CompiledQuery:
    """Build the page query, its bound parameters, display form and count query."""
    if not table:
        raise QueryValidationError("Table name is required.")

    sql = f"SELECT * FROM {quote_identifier(table)}"
    parameters: list[Any] = []

    if filter_clause and filter_clause.strip():
        sql += f" WHERE {filter_clause}"

    if sort is not None and sort.column:
        sql += f" ORDER BY {quote_identifier(sort.column)} {sort.keyword}"

    sql += f" LIMIT ${len(parameters) + 1} OFFSET ${len(parameters) + 2}"
    parameters.extend([pagination.limit, pagination.offset])

    return CompiledQuery(
        parameterized_sql=sql,
        parameters=tuple(parameters),
        display_sql=render_display_sql(sql, parameters),
        count_sql=compile_count(table, filter_clause),
    )
