from __future__ import annotations

import datetime as dt
import os
import tempfile
from pathlib import Path
from typing import Generator

# Settings are read at import time, so the data directory is redirected first.
_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="zeiterfassung-tests-"))
os.environ.setdefault("ZE_SQLITE_PATH", str(_TEST_DATA_DIR / "app.db"))
os.environ.setdefault("ZE_DATA_DIR", str(_TEST_DATA_DIR))
os.environ.setdefault("ZE_LOGO_PATH", str(_TEST_DATA_DIR / "logo.png"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from zeiterfassung.database import get_db
from zeiterfassung.main import app
from zeiterfassung.models import Base
from zeiterfassung.records import TimeEntry


@pytest.fixture(scope="session")
def engine(tmp_path_factory: pytest.TempPathFactory):
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False}, future=True)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    """Session inside an outer transaction that is rolled back after the test."""
    connection = engine.connect()
    transaction = connection.begin()
    SessionTesting = sessionmaker(bind=connection, autoflush=False, autocommit=False, future=True)
    session = SessionTesting()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(scope="function")
def client(session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_entry():
    """Factory for time entries of employee ``E1``."""

    def _make(day: str = "2024-01-08", minutes: int = 60, **fields) -> TimeEntry:
        fields.setdefault("employee_id", "E1")
        return TimeEntry(work_day=dt.date.fromisoformat(day), minutes=minutes, **fields)

    return _make
