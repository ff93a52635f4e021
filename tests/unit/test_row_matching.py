from __future__ import annotations

import json

from pg_browser.db.postgres import _row_match_clause, listing_schema


def test_plain_values_bind_in_column_order() -> None:
    sql, values = _row_match_clause(["id", "name"], [7, "Ann"])

    assert sql == '"id" = $1 AND "name" = $2'
    assert values == [7, "Ann"]


def test_null_cells_match_with_is_null_and_skip_binding() -> None:
    sql, values = _row_match_clause(["id", "name", "email"], [7, None, "a@x"])

    assert sql == '"id" = $1 AND "name" IS NULL AND "email" = $2'
    assert values == [7, "a@x"]


def test_json_cells_compare_as_jsonb_text() -> None:
    payload = {"tags": ["a", "b"], "n": 1}

    sql, values = _row_match_clause(["id", "payload"], [7, payload], frozenset({"payload"}))

    assert sql == '"id" = $1 AND CAST("payload" AS jsonb) = CAST($2 AS jsonb)'
    assert values[0] == 7
    assert json.loads(values[1]) == payload


def test_json_scalar_strings_are_reencoded() -> None:
    _, values = _row_match_clause(["doc"], ["plain"], {"doc"})

    assert values == ['"plain"']


def test_listing_schema_is_public_only_on_postgres() -> None:
    assert listing_schema("postgresql") == "public"
    assert listing_schema("sqlite") is None
