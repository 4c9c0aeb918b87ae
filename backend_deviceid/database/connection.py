"""
Database engine and session management.

Uses DEVICEID_DB_URL / DATABASE_URL when set (PostgreSQL in production);
otherwise falls back to SQLite at DEVICEID_DB_PATH or deviceid.db.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from backend_deviceid.config.env import get_database_url
from backend_deviceid.database.models import Base
from backend_deviceid.deviceid_logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def _redacted(url: str) -> str:
    """Drop credentials and query string from a URL for logging."""
    return url.split("?")[0].split("@")[-1].split("//")[-1]


def get_engine() -> Engine:
    """Create or return the cached engine."""
    global _engine
    if _engine is None:
        url = get_database_url()
        connect_args: dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        _engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        logger.info("deviceid_db_engine", url=_redacted(url))
    return _engine


def get_session_factory() -> sessionmaker:
    """Return session factory bound to the engine."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """Single session. Commits on success, rolls back on error."""
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine | None = None) -> None:
    """Create registry tables if they do not exist. Safe to call on every startup."""
    engine = engine or get_engine()
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("deviceid_init_db", url=_redacted(str(engine.url)))
    except Exception as e:
        logger.exception("deviceid_init_db_failed", error=str(e))
        raise


def reset_engine_for_test() -> None:
    """Clear cached engine and session factory. For tests only; use with a new DEVICEID_DB_PATH."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
