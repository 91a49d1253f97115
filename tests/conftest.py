from __future__ import annotations

from typing import Generator, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.db import get_db
from app.main import app
from app.models.base import Base


NEEDS_ENV_VARS = (
    "NEEDS_SEQUENCE_CAPACITY_KG",
    "NEEDS_DEMAND_FLOOR_KG",
    "NEEDS_DEFAULT_LEAD_TIME_DAYS",
    "NEEDS_ABC_EXCLUDED_PREFIXES",
    "NEEDS_MIN_REPORT_ROWS",
)

# One in-memory SQLite database holding both feed tables for the whole run
feed_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
FeedSession = sessionmaker(autocommit=False, autoflush=False, bind=feed_engine)


@pytest.fixture(scope="session", autouse=True)
def feed_tables() -> Iterator[None]:
    Base.metadata.create_all(bind=feed_engine)
    try:
        yield
    finally:
        Base.metadata.drop_all(bind=feed_engine)


@pytest.fixture(autouse=True)
def default_needs_settings(monkeypatch) -> None:
    """Engine settings come from defaults unless a test sets NEEDS_* itself."""
    for name in NEEDS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Session bound to an outer transaction that is rolled back after the test."""
    connection = feed_engine.connect()
    outer = connection.begin()
    session = FeedSession(bind=connection)
    try:
        yield session
    finally:
        session.close()
        outer.rollback()
        connection.close()


@pytest.fixture
def client(db_session) -> Iterator[TestClient]:
    """API client whose requests read the feeds through `db_session`."""

    def _get_db_override():
        yield db_session

    app.dependency_overrides[get_db] = _get_db_override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
