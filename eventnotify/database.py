"""Database helpers for eventnotify."""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker

from .config import settings


class ConfigurationError(RuntimeError):
    """Raised when the database connection has not been configured."""


def _build_engine(url: str):
    if not url:
        return None
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, future=True)


DATABASE_URL = settings.database_url
engine = _build_engine(DATABASE_URL)
SessionLocal = (
    scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    if engine is not None
    else None
)


def require_session_factory():
    """Return the session factory or raise when the database is unconfigured."""
    if SessionLocal is None:
        raise ConfigurationError("Database not configured (set EVENTNOTIFY_DATABASE_URL)")
    return SessionLocal


@contextmanager
def get_session():
    """Context manager returning a SQLAlchemy session."""
    session = require_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
