"""
Pytest fixtures for DeviceID tests. Uses a temporary SQLite DB per test.
"""

from __future__ import annotations

import pytest


@pytest.fixture
def repository(tmp_path, monkeypatch):
    """
    Point the registry at a temporary SQLite DB and init tables.
    Resets the engine cache so each test gets a fresh DB. Unsets DB URLs so SQLite is used.
    """
    monkeypatch.delenv("DEVICEID_DB_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DEVICEID_DB_PATH", str(tmp_path / "deviceid.db"))

    from backend_deviceid.database import connection
    from backend_deviceid.database.repository import DeviceRepository

    connection.reset_engine_for_test()
    connection.init_db()
    yield DeviceRepository()
    connection.reset_engine_for_test()


@pytest.fixture
def settings(tmp_path):
    """Default engine settings with an explicit database URL (no env lookup)."""
    from backend_deviceid.config.settings import Settings

    return Settings(database_url=f"sqlite:///{tmp_path / 'deviceid.db'}")


@pytest.fixture
def handler(repository, settings):
    from backend_deviceid.verification.handler import VerificationHandler

    return VerificationHandler(repository, settings=settings)
