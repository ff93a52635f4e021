from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DATA_ROOT = Path("./data")
DEFAULT_STATE_FILENAME = "browser_state.json"
DEFAULT_PAGE_LIMIT = 20
DEFAULT_HISTORY_LIMIT = 50
DEFAULT_CONNECT_TIMEOUT = 5
STATE_FILE_ENV = "PG_BROWSER_STATE_FILE"
PAGE_LIMIT_ENV = "PG_BROWSER_PAGE_LIMIT"
HISTORY_LIMIT_ENV = "PG_BROWSER_HISTORY_LIMIT"
CONNECT_TIMEOUT_ENV = "PG_BROWSER_CONNECT_TIMEOUT"


@dataclass(frozen=True)
class BrowserConfig:
    data_root: Path
    state_file: Path
    page_limit: int
    history_limit: int
    connect_timeout: int


def get_data_root() -> Path:
    return Path(os.getenv("DATA_ROOT", DEFAULT_DATA_ROOT)).expanduser()


def get_state_file(data_root: Path | None = None) -> Path:
    explicit = os.getenv(STATE_FILE_ENV)
    if explicit:
        return Path(explicit).expanduser()
    root = data_root if data_root is not None else get_data_root()
    return (root / DEFAULT_STATE_FILENAME).expanduser()


def _positive_int(env_name: str, default: int) -> int:
    raw = os.getenv(env_name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def get_page_limit() -> int:
    return _positive_int(PAGE_LIMIT_ENV, DEFAULT_PAGE_LIMIT)


def get_history_limit() -> int:
    return _positive_int(HISTORY_LIMIT_ENV, DEFAULT_HISTORY_LIMIT)


def get_connect_timeout() -> int:
    return _positive_int(CONNECT_TIMEOUT_ENV, DEFAULT_CONNECT_TIMEOUT)


def load_browser_config(data_root: Path | None = None) -> BrowserConfig:
    root = data_root if data_root is not None else get_data_root()
    return BrowserConfig(
        data_root=root,
        state_file=get_state_file(root),
        page_limit=get_page_limit(),
        history_limit=get_history_limit(),
        connect_timeout=get_connect_timeout(),
    )
