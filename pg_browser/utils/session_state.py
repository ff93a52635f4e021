from __future__ import annotations

from collections.abc import MutableMapping, Sequence
from copy import deepcopy
from typing import Any

SessionStore = MutableMapping[str, Any]

CONTROLLER_KEY = "grid_controller"
TABLE_SEARCH_KEY = "table_search"
NAVIGATION_SYNCED_KEY = "navigation_synced"

SESSION_DEFAULTS: dict[str, Any] = {
    CONTROLLER_KEY: None,
    TABLE_SEARCH_KEY: "",
    NAVIGATION_SYNCED_KEY: False,
}

# Keys cleared on disconnect; the controller itself survives so the
# remembered connection string stays in the form.
DISCONNECT_KEYS: tuple[str, ...] = (TABLE_SEARCH_KEY, NAVIGATION_SYNCED_KEY)


def _get_store(store: SessionStore | None) -> SessionStore:
    if store is not None:
        return store
    import streamlit as st

    return st.session_state


def ensure_session_defaults(store: SessionStore | None = None) -> SessionStore:
    """Populate default keys without overwriting existing values."""
    state = _get_store(store)
    for key, value in SESSION_DEFAULTS.items():
        if key not in state:
            state[key] = deepcopy(value)
    return state


def update_session_state(store: SessionStore | None = None, **updates: object) -> SessionStore:
    state = ensure_session_defaults(store)
    for key, value in updates.items():
        state[key] = value
    return state


def reset_session_keys(
    store: SessionStore | None = None,
    *,
    keys: Sequence[str] = DISCONNECT_KEYS,
) -> SessionStore:
    """Restore `keys` to their defaults, dropping keys without one.

    Widget-bound keys may only be written from a widget callback, before the
    widgets of the next run are created.
    """
    state = ensure_session_defaults(store)
    for key in keys:
        if key in SESSION_DEFAULTS:
            state[key] = deepcopy(SESSION_DEFAULTS[key])
        else:
            state.pop(key, None)
    return state
