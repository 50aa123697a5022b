"""Shared pytest fixtures for eventnotify."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from eventnotify import database, storage
from eventnotify.gateway import NotifyResult
from eventnotify.models import Base


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    database.DATABASE_URL = str(engine.url)
    storage.engine = engine
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


class RecordingGateway:
    """Delivery gateway double that records every payload it receives."""

    def __init__(self, *, success: bool = True):
        self.success = success
        self.calls = []

    def __call__(self, payload):
        self.calls.append(payload)
        return NotifyResult(success=self.success, channels=[])

    @property
    def recipients(self) -> list[str]:
        return [payload.user_id for payload in self.calls]


@pytest.fixture()
def gateway():
    return RecordingGateway()
