from __future__ import annotations


def quote_identifier(name: str) -> str:
    """Quote a table or column name, doubling embedded double quotes."""
    return '"' + str(name).replace('"', '""') + '"'


def quote_literal(value: object) -> str:
    """Quote a value as a SQL string literal, doubling embedded single quotes.

    Only used to build display SQL and filter text; executed parameters are
    always bound through the driver.
    """
    return "'" + str(value).replace("'", "''") + "'"


def render_literal(value: object) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return quote_literal(value)
    return str(value)
