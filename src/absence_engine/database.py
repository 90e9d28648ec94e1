"""Database connection and session management."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from absence_engine.config import get_settings
from absence_engine.models import Base

SQLITE_BUSY_TIMEOUT = 30.0
MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


def get_engine(database_url: str | None = None) -> Engine:
    """Create database engine."""
    url = database_url or get_settings().database_url
    if url.startswith("sqlite"):
        return _sqlite_engine(url)
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def is_memory_sqlite(url: str) -> bool:
    return url in MEMORY_SQLITE_URLS


def _sqlite_engine(url: str) -> Engine:
    # Writers queue on the busy timeout instead of failing at once.
    kwargs: dict[str, Any] = {
        "connect_args": {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}
    }
    if is_memory_sqlite(url):
        # One shared connection, otherwise every session sees an empty database.
        # That connection holds one transaction at a time, so in-memory
        # databases are for single-threaded use (bulk on one worker).
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=False, **kwargs)

    # pysqlite defers BEGIN until the first write, which breaks SAVEPOINT
    # (begin_nested). Take over transaction control from the driver.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    # IMMEDIATE takes the write lock up front. A deferred BEGIN lets two
    # read-then-update transactions deadlock, and SQLite fails one of them
    # with "database is locked" instead of waiting.
    @event.listens_for(engine, "begin")
    def _emit_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_db(create_tables: bool = False) -> tuple[Engine, sessionmaker[Session]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = make_session_factory(_engine)
    if create_tables:
        Base.metadata.create_all(_engine)
    assert _session_factory is not None
    return _engine, _session_factory


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, class_=Session, expire_on_commit=False, autoflush=False)
