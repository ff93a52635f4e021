from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from sqlalchemy import create_engine, text

DEFAULT_USERS: tuple[tuple[int, str, str | None], ...] = (
    (1, "ann@example.com", "Ann"),
    (2, "bob@example.com", "Bob"),
    (3, "joanna@example.com", None),
    (4, "carl@example.com", "Carl"),
    (5, "o'brien@example.com", "Dermot"),
)


def seed_users(db_path: Path, rows: Sequence[tuple[int, str, str | None]] = DEFAULT_USERS) -> str:
    """Create a SQLite database with a `users` table and return its URL."""
    url = f"sqlite:///{db_path}"
    engine = create_engine(url)
    try:
        with engine.begin() as connection:
            connection.execute(
                text("CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT NOT NULL, name TEXT)")
            )
            connection.execute(text('CREATE TABLE "odd ""name""" (value TEXT)'))
            for user_id, email, name in rows:
                connection.execute(
                    text("INSERT INTO users (id, email, name) VALUES (:id, :email, :name)"),
                    {"id": user_id, "email": email, "name": name},
                )
    finally:
        engine.dispose()
    return url


def read_users(url: str) -> list[tuple[object, ...]]:
    engine = create_engine(url)
    try:
        with engine.connect() as connection:
            return [tuple(row) for row in connection.execute(text("SELECT id, email, name FROM users ORDER BY id"))]
    finally:
        engine.dispose()


def execute(url: str, sql: str) -> None:
    engine = create_engine(url)
    try:
        with engine.begin() as connection:
            connection.execute(text(sql))
    finally:
        engine.dispose()
