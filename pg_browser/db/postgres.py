from __future__ import annotations

import json
from collections.abc import Collection, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError
from sqlalchemy.pool import NullPool
from sqlalchemy.sql import sqltypes

from pg_browser.services.errors import (
    DatabaseConnectionError,
    QueryError,
    QueryValidationError,
    StaleRowError,
)
from pg_browser.services.query_compiler import Pagination, SortSpec, compile_query, to_bind_sql
from pg_browser.services.sql_quoting import quote_identifier
from pg_browser.utils.config import get_connect_timeout
from pg_browser.utils.logging import get_logger, log_event, log_timing, log_warning

LOGGER = get_logger(__name__)

PUBLIC_SCHEMA = "public"
# Dialects whose JSON columns are compared as jsonb when matching a row.
JSON_MATCH_DIALECTS = frozenset({"postgresql"})


@dataclass(slots=True)
class TableData:
    columns: list[str]
    rows: list[list[Any]]
    total_rows: int
    compiled_query_display: str | None = None
    parameterized_sql: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(
                    f"Row {index} has {len(row)} cells but the result has {width} columns."
                )


def normalize_connection_string(connection_string: str) -> str:
    cleaned = (connection_string or "").strip()
    if cleaned.startswith("postgres://"):
        return "postgresql://" + cleaned[len("postgres://") :]
    return cleaned


def redact_connection_string(connection_string: str) -> str:
    try:
        return make_url(normalize_connection_string(connection_string)).render_as_string(
            hide_password=True
        )
    except (ArgumentError, ValueError):
        return "<unparseable connection string>"


def _error_message(error: Exception) -> str:
    original = getattr(error, "orig", None)
    message = str(original) if original is not None else str(error)
    return message.strip() or type(error).__name__


def build_engine(connection_string: str) -> Engine:
    """Create a pool-less engine so every boundary call opens its own connection."""
    normalized = normalize_connection_string(connection_string)
    if not normalized:
        raise QueryValidationError("PostgreSQL URL is required")
    try:
        url = make_url(normalized)
    except ArgumentError as error:
        raise DatabaseConnectionError(f"Invalid connection string: {error}") from error

    connect_args: dict[str, Any] = {}
    if url.get_backend_name() == "postgresql":
        connect_args["connect_timeout"] = get_connect_timeout()
    elif url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
    try:
        return create_engine(url, poolclass=NullPool, connect_args=connect_args)
    except (ArgumentError, NoSuchModuleError) as error:
        raise DatabaseConnectionError(_error_message(error)) from error


@contextmanager
def open_connection(connection_string: str) -> Iterator[Connection]:
    """Yield a fresh connection and release it on every exit path."""
    engine = build_engine(connection_string)
    try:
        try:
            connection = engine.connect()
        except SQLAlchemyError as error:
            raise DatabaseConnectionError(_error_message(error)) from error
        try:
            yield connection
        except SQLAlchemyError as error:
            raise QueryError(_error_message(error)) from error
        finally:
            try:
                connection.close()
            except Exception as error:  # noqa: BLE001 - cleanup after failure is best effort
                log_warning(LOGGER, "connection.release.failed", error=str(error))
    finally:
        engine.dispose()


def _execute(connection: Connection, sql: str, parameters: Sequence[Any] = ()):
    bind_sql, bind = to_bind_sql(sql)
    return connection.execute(text(bind_sql), bind(parameters))


def listing_schema(dialect_name: str) -> str | None:
    """Schema whose tables are browsed: `public` on PostgreSQL, the default elsewhere."""
    return PUBLIC_SCHEMA if dialect_name == "postgresql" else None


def list_tables(connection_string: str) -> list[str]:
    """Base tables of the browsed schema, sorted by name."""
    with log_timing(
        LOGGER, "tables.list", connection=redact_connection_string(connection_string)
    ):
        with open_connection(connection_string) as connection:
            schema = listing_schema(connection.dialect.name)
            names = inspect(connection).get_table_names(schema=schema)
    return sorted(names)


def fetch_page(
    connection_string: str,
    table: str,
    *,
    page: int = 1,
    limit: int = 20,
    sort_column: str | None = None,
    sort_direction: str | None = "asc",
    where_clause: str | None = None,
) -> TableData:
    """Run the count query and the page query together; either failing fails both."""
    if not table:
        raise QueryValidationError("PostgreSQL URL and table name are required")
    pagination = Pagination(page=page, limit=limit)
    sort = SortSpec(column=sort_column or None, direction=sort_direction or "asc")
    compiled = compile_query(table, (where_clause or "").strip(), sort, pagination)

    with log_timing(LOGGER, "page.fetch", table=table, page=page, limit=limit):
        with open_connection(connection_string) as connection:
            total_rows = int(_execute(connection, compiled.count_sql).scalar_one())
            result = _execute(connection, compiled.parameterized_sql, compiled.parameters)
            columns = [str(name) for name in result.keys()]
            rows = [list(row) for row in result]

    return TableData(
        columns=columns,
        rows=rows,
        total_rows=total_rows,
        compiled_query_display=compiled.display_sql,
        parameterized_sql=compiled.parameterized_sql,
    )


def _json_columns(connection: Connection, table: str) -> frozenset[str]:
    """Names of the reflected JSON/JSONB columns of `table`."""
    schema = listing_schema(connection.dialect.name)
    reflected = inspect(connection).get_columns(table, schema=schema)
    return frozenset(
        column["name"] for column in reflected if isinstance(column["type"], sqltypes.JSON)
    )


def _row_match_clause(
    columns: Sequence[str],
    row: Sequence[Any],
    json_columns: Collection[str] = frozenset(),
) -> tuple[str, list[Any]]:
    """WHERE body matching `row` on every column.

    JSON columns are re-serialized and compared as jsonb, since the driver
    hands them back decoded and `json` has no equality operator.
    """
    clauses: list[str] = []
    values: list[Any] = []
    for column, value in zip(columns, row):
        quoted = quote_identifier(column)
        if value is None:
            clauses.append(f"{quoted} IS NULL")
            continue
        if column in json_columns:
            values.append(json.dumps(value, default=str))
            clauses.append(f"CAST({quoted} AS jsonb) = CAST(${len(values)} AS jsonb)")
            continue
        values.append(value)
        clauses.append(f"{quoted} = ${len(values)}")
    return " AND ".join(clauses), values


def update_cell(
    connection_string: str,
    table: str,
    *,
    column: str,
    row_index: int,
    page: int = 1,
    limit: int = 20,
    new_value: Any = None,
    sort_column: str | None = None,
    sort_direction: str | None = None,
    where_clause: str | None = None,
) -> int:
    """Set one cell on the row currently shown at `row_index` of the given page.

    The row is re-derived with the same page, limit, sort and filter and is
    matched by every column value. Returns the number of rows updated.
    """
    if not table or not column:
        raise QueryValidationError("All fields are required")
    if row_index < 0:
        raise StaleRowError("Invalid row index")

    pagination = Pagination.clamped(page, limit)
    sort = SortSpec(column=sort_column or None, direction=sort_direction or "asc")
    compiled = compile_query(table, (where_clause or "").strip(), sort, pagination)
    value = None if new_value == "null" else new_value

    with log_timing(LOGGER, "cell.update", table=table, column=column, row_index=row_index):
        with open_connection(connection_string) as connection:
            result = _execute(connection, compiled.parameterized_sql, compiled.parameters)
            columns = [str(name) for name in result.keys()]
            rows = [list(row) for row in result]
            if row_index >= len(rows):
                raise StaleRowError("Invalid row index")
            if column not in columns:
                raise QueryValidationError(f"Column '{column}' does not exist on '{table}'.")

            json_columns: frozenset[str] = frozenset()
            if connection.dialect.name in JSON_MATCH_DIALECTS:
                json_columns = _json_columns(connection, table)
            if column in json_columns and value is not None and not isinstance(value, str):
                value = json.dumps(value)

            match_sql, match_values = _row_match_clause(columns, rows[row_index], json_columns)
            match_values.append(value)
            update_sql = (
                f"UPDATE {quote_identifier(table)} "
                f"SET {quote_identifier(column)} = ${len(match_values)} "
                f"WHERE {match_sql}"
            )
            updated = _execute(connection, update_sql, match_values).rowcount
            if updated == 0:
                connection.rollback()
                raise StaleRowError("Row changed before the update was applied")
            connection.commit()

    if updated > 1:
        log_warning(LOGGER, "cell.update.multiple_rows", table=table, column=column, rows=updated)
    log_event(LOGGER, "cell.update.applied", table=table, column=column, rows=updated)
    return updated
