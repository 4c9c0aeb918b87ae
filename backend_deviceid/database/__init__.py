"""
Database layer: device registry rows, engine/session management, and the
storage collaborator the verification handler reads history and catalogs from.

SQLite by default; PostgreSQL via DEVICEID_DB_URL / DATABASE_URL.
"""

from backend_deviceid.database.connection import (
    get_engine,
    get_session_factory,
    init_db,
    reset_engine_for_test,
    session_scope,
)
from backend_deviceid.database.repository import (
    IDENTIFIER_IMEI,
    IDENTIFIER_SERIAL,
    DeviceRepository,
)

__all__ = [
    "IDENTIFIER_IMEI",
    "IDENTIFIER_SERIAL",
    "DeviceRepository",
    "get_engine",
    "get_session_factory",
    "init_db",
    "reset_engine_for_test",
    "session_scope",
]
