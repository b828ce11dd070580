from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "WASTE_STORE_PATH"
_FETCH_WORKER_COUNT_ENV = "FETCH_WORKER_COUNT"
_DEFAULT_DAYS_ENV = "REPORT_DEFAULT_DAYS"
_DEFAULT_LIMIT_ENV = "REPORT_DEFAULT_LIMIT"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_API_TOKEN_ENV = "API_TOKEN"


@dataclass(frozen=True)
class Settings:
    store_path: Optional[str]
    fetch_workers: int
    default_days: int
    default_limit: int
    log_level: str
    api_token: Optional[str]


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/waste_store.json"),
        fetch_workers=_read_positive_int(_FETCH_WORKER_COUNT_ENV, 4),
        default_days=_read_positive_int(_DEFAULT_DAYS_ENV, 30),
        default_limit=_read_positive_int(_DEFAULT_LIMIT_ENV, 10),
        log_level=_read_log_level("INFO"),
        api_token=_read_optional_env(_API_TOKEN_ENV, None),
    )
