#!/usr/bin/env python3
"""
Database engine and session factory.

Any SQLAlchemy URL works. SQLite gets two adjustments so it can honour the
ledger's locking model:

- transactions start with BEGIN IMMEDIATE, taking the write lock up front, so
  two concurrent read-modify-write units on the same file serialize instead of
  both reading a stale balance
- in-memory databases share one connection (StaticPool) so every session
  sees the same schema and data
"""

import logging

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import DatabaseConfig
from .models import Base

logger = logging.getLogger(__name__)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return _is_sqlite(url) and (url.endswith(":memory:") or url in ("sqlite://", "sqlite+pysqlite://"))


def _enable_sqlite_locking(engine: Engine) -> None:
    """Hand transaction control to SQLAlchemy and begin with an immediate write lock."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        # Disable pysqlite's own BEGIN handling
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_ledger_engine(database: DatabaseConfig) -> Engine:
    """
    Create an engine for the configured database.

    Args:
        database: Database configuration (url, echo)

    Returns:
        SQLAlchemy Engine
    """
    url = database.url
    kwargs: dict = {"echo": database.echo}

    if _is_memory_sqlite(url):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    elif _is_sqlite(url):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(url, **kwargs)

    if _is_sqlite(url):
        _enable_sqlite_locking(engine)

    logger.debug(f"Created engine for {engine.url.render_as_string(hide_password=True)}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory; objects stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create all ledger tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Ledger schema initialized")


def drop_schema(engine: Engine) -> None:
    """Drop all ledger tables."""
    Base.metadata.drop_all(engine)
