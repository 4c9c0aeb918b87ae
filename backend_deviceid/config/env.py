"""
Environment variable loading for DeviceID.

- DEVICEID_DB_URL / DATABASE_URL: SQLAlchemy URL (PostgreSQL in production)
- DEVICEID_DB_PATH: SQLite file used when no URL is set (default: deviceid.db)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is backend_deviceid/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_SQLITE_PATH = "deviceid.db"


def load_deviceid_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides set vars."""
    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def get_database_url() -> str:
    """
    Resolve the database URL.
    Order: DEVICEID_DB_URL > DATABASE_URL > sqlite:///{DEVICEID_DB_PATH or deviceid.db}.
    """
    load_deviceid_env()
    url = (os.getenv("DEVICEID_DB_URL") or os.getenv("DATABASE_URL") or "").strip()
    if url:
        return url
    path = (os.getenv("DEVICEID_DB_PATH") or "").strip() or DEFAULT_SQLITE_PATH
    return f"sqlite:///{path}"


def env_int(name: str, default: int, minimum: int | None = None) -> int:
    """Read an integer env var; fall back to default on missing or malformed values."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if minimum is not None:
        value = max(minimum, value)
    return value
