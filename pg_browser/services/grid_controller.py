from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

from pg_browser.db import postgres
from pg_browser.db.postgres import TableData
from pg_browser.services.column_view import ColumnViewState
from pg_browser.services.errors import (
    BrowserError,
    EditInProgressError,
    QueryValidationError,
    StaleRowError,
)
from pg_browser.services.filters import (
    FilterCondition,
    FilterOperator,
    LogicalOperator,
    active_conditions,
    compile_where,
)
from pg_browser.services.history import QueryHistoryEntry, QueryHistoryStore
from pg_browser.services.query_compiler import Pagination, SortSpec, compile_query
from pg_browser.services.storage import (
    ConnectionMemory,
    KeyValueStore,
    MemoryKeyValueStore,
    StarredTables,
)
from pg_browser.utils.config import DEFAULT_HISTORY_LIMIT, DEFAULT_PAGE_LIMIT
from pg_browser.utils.logging import get_logger, log_event, log_warning

LOGGER = get_logger(__name__)


class DatabaseGateway(Protocol):
    def list_tables(self, connection_string: str) -> list[str]: ...

    def fetch_page(
        self,
        connection_string: str,
        table: str,
        *,
        page: int,
        limit: int,
        sort_column: str | None,
        sort_direction: str | None,
        where_clause: str | None,
    ) -> TableData: ...

    def update_cell(
        self,
        connection_string: str,
        table: str,
        *,
        column: str,
        row_index: int,
        page: int,
        limit: int,
        new_value: Any,
        sort_column: str | None,
        sort_direction: str | None,
        where_clause: str | None,
    ) -> int: ...


class DirectGateway:
    """Gateway that calls the database boundary in-process."""

    def list_tables(self, connection_string: str) -> list[str]:
        return postgres.list_tables(connection_string)

    def fetch_page(self, connection_string: str, table: str, **options: Any) -> TableData:
        return postgres.fetch_page(connection_string, table, **options)

    def update_cell(self, connection_string: str, table: str, **options: Any) -> int:
        return postgres.update_cell(connection_string, table, **options)


class EditPhase(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"


@dataclass(frozen=True)
class EditState:
    phase: EditPhase = EditPhase.IDLE
    row_index: int | None = None
    display_index: int | None = None
    value: str = ""


@dataclass(frozen=True)
class FetchTicket:
    generation: int
    connection_string: str
    table: str
    page: int
    limit: int
    sort: SortSpec
    where_clause: str


def page_bounds(page: int, limit: int, total_rows: int) -> tuple[int, int]:
    """1-based first and last row numbers shown on `page`, clamped to the total."""
    start_row = (max(1, page) - 1) * limit + 1
    end_row = min(max(1, page) * limit, total_rows)
    return start_row, end_row


def total_pages(total_rows: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return math.ceil(total_rows / limit)


def cell_text(value: Any) -> str:
    return "null" if value is None else str(value)


def interpret_edit_value(text: str) -> str | None:
    stripped = text.strip()
    if stripped == "null" or stripped == "":
        return None
    return text


class GridController:
    """State and actions behind the table grid for one browser session."""

    def __init__(
        self,
        gateway: DatabaseGateway | None = None,
        *,
        store: KeyValueStore | None = None,
        page_limit: int = DEFAULT_PAGE_LIMIT,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.gateway: DatabaseGateway = gateway or DirectGateway()
        backing = store if store is not None else MemoryKeyValueStore()
        self.history = QueryHistoryStore(backing, max_entries=history_limit)
        self.starred = StarredTables(backing)
        self.connection_memory = ConnectionMemory(backing)

        self.connection_string = self.connection_memory.load()
        self.is_connected = False
        self.tables: list[str] = []
        self.selected_table: str | None = None
        self.page = 1
        self.limit = page_limit
        self.sort = SortSpec()
        self.filters: list[FilterCondition] = []
        self.applied_filters: list[FilterCondition] = []
        self.table_data: TableData | None = None
        self.view = ColumnViewState()
        self.edit = EditState()
        self.error: str | None = None
        self.status: str | None = None
        self._generation = 0

    # Connection -----------------------------------------------------------
    def connect(self, connection_string: str) -> bool:
        cleaned = (connection_string or "").strip()
        if not cleaned:
            self.error = "Please enter a PostgreSQL connection URL"
            return False

        self._generation += 1
        self.connection_string = cleaned
        self.error = None
        try:
            tables = self.gateway.list_tables(cleaned)
        except BrowserError as error:
            self._record_error("connect", error)
            self.is_connected = False
            return False

        self.tables = list(tables)
        self.is_connected = True
        self.selected_table = None
        self.table_data = None
        self.view.reset()
        self.connection_memory.remember(cleaned)
        log_event(LOGGER, "browser.connected", table_count=len(self.tables))
        return True

    def disconnect(self) -> None:
        self._generation += 1
        self.is_connected = False
        self.tables = []
        self.selected_table = None
        self.table_data = None
        self.view.reset()
        self.edit = EditState()

    # Table list -----------------------------------------------------------
    def toggle_star(self, table: str) -> bool:
        return self.starred.toggle(table)

    def sorted_tables(self, search: str = "") -> list[str]:
        """Tables matching `search`, starred ones first, then by name."""
        needle = search.strip().lower()
        starred = self.starred.all()
        matches = [name for name in self.tables if needle in name.lower()]
        return sorted(matches, key=lambda name: (name not in starred, name.lower(), name))

    # Navigation -----------------------------------------------------------
    def select_table(self, table: str, *, page: int = 1) -> bool:
        if not table:
            self.error = "PostgreSQL URL and table name are required"
            return False
        if table != self.selected_table:
            self._generation += 1
            self.table_data = None
            self.view.reset()
        self.selected_table = table
        self.page = max(1, page)
        self.sort = SortSpec()
        self.filters = []
        self.applied_filters = []
        self.edit = EditState()
        return self.refresh()

    def change_page(self, page: int) -> bool:
        if self.selected_table is None:
            return False
        self.page = max(1, int(page))
        return self.refresh()

    def toggle_sort(self, column: str, direction: str = "asc") -> bool:
        if self.selected_table is None:
            return False
        self.sort = self.sort.toggled(column, direction)
        return self.refresh()

    def clear_sort(self) -> bool:
        if self.selected_table is None:
            return False
        self.sort = SortSpec()
        return self.refresh()

    # Filters --------------------------------------------------------------
    def add_filter(
        self,
        column: str = "",
        operator: FilterOperator | str = FilterOperator.EQ,
        value: str = "",
        logical_op: LogicalOperator | str | None = None,
    ) -> FilterCondition:
        if self.filters and logical_op is None:
            logical_op = LogicalOperator.AND
        condition = FilterCondition(
            column=column,
            operator=FilterOperator.parse(operator),
            value=value,
            logical_op=LogicalOperator.parse(logical_op) if self.filters else None,
        )
        self.filters.append(condition)
        return condition

    def update_filter(self, condition_id: str, **changes: Any) -> FilterCondition:
        for position, condition in enumerate(self.filters):
            if condition.id != condition_id:
                continue
            if "operator" in changes:
                changes["operator"] = FilterOperator.parse(changes["operator"])
            if "logical_op" in changes:
                changes["logical_op"] = LogicalOperator.parse(changes["logical_op"])
            updated = replace(condition, **changes)
            self.filters[position] = updated
            return updated
        raise KeyError(condition_id)

    def remove_filter(self, condition_id: str) -> None:
        self.filters = [condition for condition in self.filters if condition.id != condition_id]
        if self.filters:
            self.filters[0] = replace(self.filters[0], logical_op=None)

    def clear_filters(self) -> None:
        self.filters = []

    def apply_filters(self) -> bool:
        self.applied_filters = [replace(condition) for condition in active_conditions(self.filters)]
        self.page = 1
        return self.refresh()

    @property
    def where_clause(self) -> str:
        return compile_where(self.applied_filters)

    # Fetching -------------------------------------------------------------
    def begin_fetch(self) -> FetchTicket:
        if not self.connection_string or not self.selected_table:
            raise QueryValidationError("PostgreSQL URL and table name are required")
        return self._ticket()

    def _ticket(self) -> FetchTicket:
        return FetchTicket(
            generation=self._generation,
            connection_string=self.connection_string,
            table=self.selected_table or "",
            page=self.page,
            limit=self.limit,
            sort=self.sort,
            where_clause=self.where_clause,
        )

    def is_current(self, ticket: FetchTicket) -> bool:
        return ticket == self._ticket()

    def complete_fetch(self, ticket: FetchTicket, data: TableData) -> bool:
        """Apply a fetched page unless newer state has superseded the request."""
        if not self.is_current(ticket):
            log_event(LOGGER, "page.fetch.discarded", table=ticket.table, page=ticket.page)
            return False
        self.table_data = data
        self.view.initialize(data.columns)
        self.error = None
        self._remember_query(ticket)
        return True

    def fail_fetch(self, ticket: FetchTicket, error: BrowserError) -> bool:
        if not self.is_current(ticket):
            return False
        self._record_error("page.fetch", error)
        return True

    def refresh(self) -> bool:
        try:
            ticket = self.begin_fetch()
        except QueryValidationError as error:
            self._record_error("page.fetch", error)
            return False
        try:
            data = self.gateway.fetch_page(
                ticket.connection_string,
                ticket.table,
                page=ticket.page,
                limit=ticket.limit,
                sort_column=ticket.sort.column,
                sort_direction=ticket.sort.direction,
                where_clause=ticket.where_clause or None,
            )
        except BrowserError as error:
            self.fail_fetch(ticket, error)
            return False
        return self.complete_fetch(ticket, data)

    # History --------------------------------------------------------------
    def _remember_query(self, ticket: FetchTicket) -> None:
        # Entries are normalised to the first page so paging does not flood
        # the log and a replay recompiles to the same text.
        first_page = compile_query(
            ticket.table, ticket.where_clause, ticket.sort, Pagination(page=1, limit=ticket.limit)
        )
        entry = QueryHistoryEntry.capture(first_page.display_sql, self.applied_filters, ticket.sort)
        self.history.append(ticket.table, entry)

    def history_entries(self) -> list[QueryHistoryEntry]:
        if self.selected_table is None:
            return []
        return self.history.list(self.selected_table)

    def replay(self, entry: QueryHistoryEntry) -> bool:
        conditions = entry.conditions()
        self.filters = conditions
        self.applied_filters = [replace(condition) for condition in conditions]
        self.sort = entry.sort_spec()
        self.page = 1
        return self.refresh()

    def current_display_sql(self) -> str | None:
        if self.selected_table is None:
            return None
        compiled = compile_query(
            self.selected_table,
            self.where_clause,
            self.sort,
            Pagination(page=self.page, limit=self.limit),
        )
        return compiled.display_sql

    # Column view ----------------------------------------------------------
    def visible_columns(self) -> list[int]:
        if self.table_data is None:
            return []
        return self.view.visible_ordered_columns(self.table_data.columns)

    def visible_column_names(self) -> list[str]:
        if self.table_data is None:
            return []
        return [self.table_data.columns[index] for index in self.visible_columns()]

    def visible_rows(self) -> list[list[Any]]:
        if self.table_data is None:
            return []
        indices = self.visible_columns()
        return [[row[index] for index in indices] for row in self.table_data.rows]

    def row_range(self) -> tuple[int, int]:
        total = self.table_data.total_rows if self.table_data else 0
        return page_bounds(self.page, self.limit, total)

    def page_count(self) -> int:
        total = self.table_data.total_rows if self.table_data else 0
        return total_pages(total, self.limit)

    # Cell editing ---------------------------------------------------------
    def begin_edit(self, row_index: int, display_index: int) -> EditState:
        if self.edit.phase != EditPhase.IDLE:
            raise EditInProgressError("Finish or cancel the current edit first.")
        if self.table_data is None or not 0 <= row_index < len(self.table_data.rows):
            raise StaleRowError("Invalid row index")
        try:
            physical = self.view.physical_index(display_index, self.table_data.columns)
        except IndexError as error:
            raise QueryValidationError(str(error)) from error
        value = self.table_data.rows[row_index][physical]
        self.edit = EditState(
            phase=EditPhase.EDITING,
            row_index=row_index,
            display_index=display_index,
            value=cell_text(value),
        )
        return self.edit

    def set_edit_value(self, value: str) -> None:
        if self.edit.phase != EditPhase.EDITING:
            return
        self.edit = replace(self.edit, value=value)

    def cancel_edit(self) -> None:
        if self.edit.phase == EditPhase.SAVING:
            raise EditInProgressError("The edit is already being saved.")
        self.edit = EditState()

    def save_edit(self) -> bool:
        if self.edit.phase != EditPhase.EDITING:
            return False
        if self.table_data is None or self.selected_table is None:
            self.edit = EditState()
            return False
        assert self.edit.row_index is not None and self.edit.display_index is not None

        editing = self.edit
        self.edit = replace(editing, phase=EditPhase.SAVING)
        try:
            physical = self.view.physical_index(editing.display_index, self.table_data.columns)
            column = self.table_data.columns[physical]
            self.gateway.update_cell(
                self.connection_string,
                self.selected_table,
                column=column,
                row_index=editing.row_index,
                page=self.page,
                limit=self.limit,
                new_value=interpret_edit_value(editing.value),
                sort_column=self.sort.column,
                sort_direction=self.sort.direction,
                where_clause=self.where_clause or None,
            )
        except (BrowserError, IndexError) as error:
            self.edit = editing
            self._record_error("cell.update", error)
            return False

        self.edit = EditState()
        self.status = "Cell updated successfully"
        self.refresh()
        return True

    # Errors ---------------------------------------------------------------
    def _record_error(self, action: str, error: Exception) -> None:
        self.error = str(error) or type(error).__name__
        log_warning(
            LOGGER,
            f"{action}.failed",
            table=self.selected_table,
            error_type=type(error).__name__,
            message=self.error,
        )

    def dismiss_messages(self) -> None:
        self.error = None
        self.status = None


def rows_for_display(rows: Sequence[Sequence[Any]]) -> list[list[str]]:
    return [[cell_text(value) for value in row] for row in rows]
