"""Address-bar state: the selected table and the page number.

Sort and filters deliberately stay out of the address.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

TABLE_PARAM = "table"
PAGE_PARAM = "page"


@dataclass(frozen=True)
class NavigationState:
    table: str | None = None
    page: int = 1


def encode_navigation(table: str | None, page: int) -> dict[str, str]:
    if not table:
        return {}
    return {TABLE_PARAM: table, PAGE_PARAM: str(max(1, page))}


def decode_navigation(params: Mapping[str, object]) -> NavigationState:
    raw_table = params.get(TABLE_PARAM)
    if isinstance(raw_table, list):
        raw_table = raw_table[0] if raw_table else None
    table = str(raw_table).strip() if raw_table else None

    raw_page = params.get(PAGE_PARAM)
    if isinstance(raw_page, list):
        raw_page = raw_page[0] if raw_page else None
    try:
        page = int(str(raw_page)) if raw_page is not None else 1
    except ValueError:
        page = 1
    return NavigationState(table=table or None, page=max(1, page))
