from __future__ import annotations

import json
import os
import tempfile
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, Protocol

from pg_browser.utils.config import get_state_file
from pg_browser.utils.logging import get_logger

LOGGER = get_logger(__name__)

STARRED_TABLES_KEY = "starred_tables"
CONNECTION_STRING_KEY = "postgres_url"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Key-value store over any mutable mapping (a dict, or Streamlit session state)."""

    def __init__(self, backing: MutableMapping[str, Any] | None = None, *, namespace: str = "") -> None:
        self._backing: MutableMapping[str, Any] = backing if backing is not None else {}
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def get(self, key: str) -> Any | None:
        return self._backing.get(self._key(key))

    def set(self, key: str, value: Any) -> None:
        self._backing[self._key(key)] = value

    def remove(self, key: str) -> None:
        self._backing.pop(self._key(key), None)


class JsonFileKeyValueStore:
    """Persist values in one JSON document, rewritten atomically on every change."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path is not None else get_state_file()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            LOGGER.warning("Corrupt browser state at %s, starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        handle, temp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                json.dump(data, stream, indent=2, default=str)
            os.replace(temp_name, self.path)
        except Exception:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Any | None:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


class StarredTables:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def all(self) -> set[str]:
        stored = self.store.get(STARRED_TABLES_KEY)
        if not isinstance(stored, list):
            return set()
        return {str(name) for name in stored}

    def is_starred(self, table: str) -> bool:
        return table in self.all()

    def toggle(self, table: str) -> bool:
        starred = self.all()
        if table in starred:
            starred.discard(table)
        else:
            starred.add(table)
        self.store.set(STARRED_TABLES_KEY, sorted(starred))
        return table in starred


class ConnectionMemory:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def load(self) -> str:
        value = self.store.get(CONNECTION_STRING_KEY)
        return value if isinstance(value, str) else ""

    def remember(self, connection_string: str) -> None:
        self.store.set(CONNECTION_STRING_KEY, connection_string)

    def forget(self) -> None:
        self.store.remove(CONNECTION_STRING_KEY)
