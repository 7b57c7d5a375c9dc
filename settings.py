from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw.strip())


@dataclass(frozen=True)
class Settings:
    # Storage
    folder_path: str
    max_cache_items: int

    # API
    api_key: str | None
    enable_realtime: bool

    # Debug
    debug_log_requests: bool
    log_level: str


def get_settings() -> Settings:
    folder_path = os.getenv("DOCSTORE_FOLDER_PATH", "./data")
    max_cache_items = _env_int("DOCSTORE_MAX_CACHE_ITEMS", 10000)

    # Empty string means "no key": auth stays off.
    api_key = (os.getenv("DOCSTORE_API_KEY") or "").strip() or None
    enable_realtime = _env_bool("DOCSTORE_ENABLE_REALTIME", True)

    debug_log_requests = _env_bool("DEBUG_LOG_REQUESTS", True)
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

    return Settings(
        folder_path=folder_path,
        max_cache_items=max_cache_items,
        api_key=api_key,
        enable_realtime=enable_realtime,
        debug_log_requests=debug_log_requests,
        log_level=log_level,
    )
