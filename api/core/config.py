"""
Environment-backed settings.

Every setting is read at call time so tests can override them with
`monkeypatch.setenv`. Blank or unparsable values fall back to the default.
"""

from __future__ import annotations

import os

DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")


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


def database_url_raw() -> str:
    return os.environ.get("DATABASE_URL", "").strip()


def db_pool_min_size() -> int:
    return max(0, _env_int("DB_POOL_MIN_SIZE", 1))


def db_pool_max_size() -> int:
    return max(1, _env_int("DB_POOL_MAX_SIZE", 10))


def db_command_timeout_s() -> float:
    return _env_float("DB_COMMAND_TIMEOUT_S", 30.0)


def db_acquire_timeout_s() -> float:
    return _env_float("DB_ACQUIRE_TIMEOUT_S", 10.0)


def image_dir() -> str:
    return os.environ.get("IMAGE_DIR", "images").strip() or "images"


def cursor_idle_ttl_s() -> float:
    return _env_float("CURSOR_IDLE_TTL_S", 600.0)


def cursor_sweep_interval_s() -> float:
    return _env_float("CURSOR_SWEEP_INTERVAL_S", 60.0)


def default_per_page() -> int:
    value = _env_int("DEFAULT_PER_PAGE", 10)
    return value if value >= 0 else 10


def cors_allow_origins() -> list[str]:
    raw = os.environ.get("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return list(DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def log_level() -> str:
    return os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"
