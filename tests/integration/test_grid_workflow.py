from __future__ import annotations

from pathlib import Path

import pytest

from pg_browser.services.filters import FilterOperator
from pg_browser.services.grid_controller import DirectGateway, EditPhase, GridController
from pg_browser.services.storage import JsonFileKeyValueStore, MemoryKeyValueStore
from tests.fixtures.database import execute, read_users


@pytest.fixture
def browser(sqlite_url: str) -> GridController:
    grid = GridController(DirectGateway(), store=MemoryKeyValueStore(), page_limit=2)
    assert grid.connect(sqlite_url)
    return grid


def test_browse_filter_and_edit(browser: GridController, sqlite_url: str) -> None:
    assert browser.tables == ['odd "name"', "users"]

    browser.select_table("users")
    browser.toggle_sort("id", "asc")
    browser.add_filter("email", FilterOperator.CONTAINS, "ann")
    browser.apply_filters()

    assert browser.table_data is not None
    assert browser.table_data.total_rows == 2
    assert browser.row_range() == (1, 2)
    assert browser.current_display_sql() == (
        "SELECT * FROM \"users\" WHERE \"email\" LIKE '%ann%' ORDER BY \"id\" ASC LIMIT 2 OFFSET 0"
    )

    state = browser.begin_edit(1, 2)
    assert state.value == "null"
    browser.set_edit_value("Joanna")

    assert browser.save_edit() is True
    assert browser.error is None
    assert read_users(sqlite_url)[2] == (3, "joanna@example.com", "Joanna")
    assert browser.table_data.rows[1][2] == "Joanna"


def test_edit_after_rows_deleted_reports_stale_row(browser: GridController, sqlite_url: str) -> None:
    browser.select_table("users")
    browser.toggle_sort("id", "asc")
    browser.change_page(3)
    browser.begin_edit(0, 1)
    browser.set_edit_value("late@example.com")

    execute(sqlite_url, "DELETE FROM users WHERE id >= 4")

    assert browser.save_edit() is False
    assert browser.error == "Invalid row index"
    assert browser.edit.phase is EditPhase.EDITING
    assert [row[1] for row in read_users(sqlite_url)] == [
        "ann@example.com",
        "bob@example.com",
        "joanna@example.com",
    ]


def test_missing_table_surfaces_database_message(browser: GridController, sqlite_url: str) -> None:
    execute(sqlite_url, "DROP TABLE users")

    assert browser.select_table("users") is False
    assert browser.error is not None and "no such table" in browser.error


def test_state_survives_new_session(sqlite_url: str, tmp_path: Path) -> None:
    store = JsonFileKeyValueStore(tmp_path / "browser_state.json")
    first = GridController(DirectGateway(), store=store)
    assert first.connect(sqlite_url)
    first.toggle_star("users")
    first.select_table("users")
    first.toggle_sort("id", "desc")

    second = GridController(DirectGateway(), store=JsonFileKeyValueStore(tmp_path / "browser_state.json"))

    assert second.connection_string == sqlite_url
    assert second.connect(second.connection_string)
    assert second.sorted_tables() == ["users", 'odd "name"']
    second.select_table("users")
    assert [entry.display_sql for entry in second.history_entries()] == [
        'SELECT * FROM "users" LIMIT 20 OFFSET 0',
        'SELECT * FROM "users" ORDER BY "id" DESC LIMIT 20 OFFSET 0',
    ]
