"""
Process configuration.

Every value is read from the environment first. The connection string and the
api-key may also come from a JSON settings file (`appsettings.json` by
default), which is handy for local runs outside Docker.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

DEFAULT_SETTINGS_PATH = "appsettings.json"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def settings_path() -> Path:
    return Path(os.environ.get("APPSETTINGS_PATH", DEFAULT_SETTINGS_PATH).strip() or DEFAULT_SETTINGS_PATH)


def load_settings_file(path: Path | None = None) -> dict[str, Any]:
    """
    Read the JSON settings file. A missing file is the same as an empty one.
    """
    path = path or settings_path()
    if not path.is_file():
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise RuntimeError(f"Could not read settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise RuntimeError(f"Settings file {path} must contain a JSON object.")
    return data


@lru_cache(maxsize=1)
def connection_string() -> str:
    """
    SUPABASE_CONNECTION wins; otherwise ConnectionStrings.SupabaseConnection
    from the settings file. Resolved once per process.
    """
    url = os.environ.get("SUPABASE_CONNECTION", "").strip()
    if url:
        return url

    section = load_settings_file().get("ConnectionStrings") or {}
    url = str(section.get("SupabaseConnection") or "").strip() if isinstance(section, dict) else ""
    if not url:
        raise RuntimeError("SUPABASE_CONNECTION is not set and no SupabaseConnection is configured.")
    return url


@lru_cache(maxsize=1)
def api_key() -> str | None:
    """
    Shared secret expected in the `api-key` header. None means nothing is
    configured and every ingestion request is rejected. Resolved once per
    process.
    """
    key = os.environ.get("CASHKUBER_API_KEY", "").strip()
    if key:
        return key
    key = str(load_settings_file().get("ApiKey") or "").strip()
    return key or None


def db_pool_max_size() -> int:
    return max(1, _env_int("DB_POOL_MAX_SIZE", 5))


def db_command_timeout() -> float:
    return _env_float("DB_COMMAND_TIMEOUT", 30.0)


def db_connect_timeout() -> float:
    return _env_float("DB_CONNECT_TIMEOUT", 10.0)


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS", "")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def log_level() -> str:
    return os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def clear_cache() -> None:
    connection_string.cache_clear()
    api_key.cache_clear()
