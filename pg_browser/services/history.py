from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pg_browser.services.filters import FilterCondition, restore_conditions, snapshot_conditions
from pg_browser.services.query_compiler import SortSpec
from pg_browser.services.storage import KeyValueStore
from pg_browser.utils.config import DEFAULT_HISTORY_LIMIT
from pg_browser.utils.logging import get_logger

LOGGER = get_logger(__name__)

HISTORY_KEY_PREFIX = "query_history:"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class QueryHistoryEntry:
    display_sql: str
    filter_conditions: list[dict[str, Any]] = field(default_factory=list)
    sort: dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=_now_ms)

    @classmethod
    def capture(
        cls,
        display_sql: str,
        conditions: Sequence[FilterCondition],
        sort: SortSpec,
    ) -> QueryHistoryEntry:
        return cls(
            display_sql=display_sql,
            filter_conditions=snapshot_conditions(conditions),
            sort=sort.to_dict(),
        )

    def conditions(self) -> list[FilterCondition]:
        return restore_conditions(self.filter_conditions)

    def sort_spec(self) -> SortSpec:
        return SortSpec.from_dict(self.sort)

    def to_dict(self) -> dict[str, Any]:
        return {
            "display_sql": self.display_sql,
            "filter_conditions": list(self.filter_conditions),
            "sort": dict(self.sort),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> QueryHistoryEntry:
        return cls(
            display_sql=str(payload["display_sql"]),
            filter_conditions=list(payload.get("filter_conditions") or []),
            sort=dict(payload.get("sort") or {}),
            timestamp=int(payload.get("timestamp") or 0),
        )


class QueryHistoryStore:
    """Per-table log of compiled queries, most recent first."""

    def __init__(self, store: KeyValueStore, *, max_entries: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.store = store
        self.max_entries = max_entries

    @staticmethod
    def _key(table: str) -> str:
        return f"{HISTORY_KEY_PREFIX}{table}"

    def list(self, table: str) -> list[QueryHistoryEntry]:
        raw = self.store.get(self._key(table))
        if not raw:
            return []
        entries: list[QueryHistoryEntry] = []
        try:
            for item in raw:
                entries.append(QueryHistoryEntry.from_dict(item))
        except (KeyError, TypeError, ValueError):
            LOGGER.warning("Discarding unreadable query history for %s", table)
            return []
        return entries

    def append(self, table: str, entry: QueryHistoryEntry) -> list[QueryHistoryEntry]:
        """Put `entry` at the front; an identical display_sql moves rather than duplicates."""
        entries = [existing for existing in self.list(table) if existing.display_sql != entry.display_sql]
        entries.insert(0, entry)
        del entries[self.max_entries :]
        self.store.set(self._key(table), [item.to_dict() for item in entries])
        return entries

    def clear(self, table: str) -> None:
        self.store.remove(self._key(table))
