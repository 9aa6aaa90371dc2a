"""Engine and session helpers.

The engine is created lazily from :func:`get_database_settings` so importing
the package has no side effects on disk. Tests and embedding applications can
hand their own ``sessionmaker`` to the services instead.
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from draftgate.db.config import DatabaseSettings, get_database_settings
from draftgate.db.models import Base


def build_engine(settings: DatabaseSettings) -> Engine:
    """Create an engine for ``settings``; SQLite connections enforce foreign keys."""

    engine = create_engine(settings.url, **settings.engine_options())

    if settings.is_sqlite:

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # type: ignore[override]
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA foreign_keys=ON")
            finally:
                cursor.close()

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return build_engine(get_database_settings())


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    return build_session_factory(get_engine())


def initialise_schema(engine: Engine) -> None:
    """Create any missing tables (development and tests; production uses Alembic)."""

    Base.metadata.create_all(engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Context manager yielding a session that commits on success."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "build_engine",
    "build_session_factory",
    "get_engine",
    "get_session_factory",
    "initialise_schema",
    "session_scope",
]
