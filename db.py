"""SQLAlchemy wiring for the EAV staging store.

The store is a throwaway SQLite file. Writer engines trade durability for
throughput; reader engines open the same file read-only so pivot workers never
share the writer's connection. WAL journaling lets those readers proceed while
the writer keeps its connection open.
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

Base = declarative_base()

# Relaxed durability: in-memory temp storage, WAL, no fsync.
WRITER_PRAGMAS: tuple[str, ...] = (
    "PRAGMA temp_store=MEMORY",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=OFF",
)


def _set_writer_pragmas(dbapi_connection, connection_record):
    """Configure SQLite for fast, non-durable staging writes."""
    cursor = dbapi_connection.cursor()
    try:
        for pragma in WRITER_PRAGMAS:
            cursor.execute(pragma)
        # Needed for ON DELETE CASCADE on attributes.
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _set_reader_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA temp_store=MEMORY")
    finally:
        cursor.close()


def sqlite_url(db_path: Path | str, *, read_only: bool = False) -> str:
    path = os.path.abspath(str(db_path))
    if read_only:
        return f"sqlite:///file:{path}?mode=ro&uri=true"
    return f"sqlite:///{path}"


def make_writer_engine(db_path: Path | str) -> Engine:
    """Engine for the single producer context.

    `check_same_thread=False` only allows handing the engine between threads;
    callers still keep all writes on one thread.
    """

    engine = create_engine(
        sqlite_url(db_path),
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    event.listen(engine, "connect", _set_writer_pragmas)
    return engine


def make_read_only_engine(db_path: Path | str) -> Engine:
    """Engine over a read-only connection to an existing store file.

    NullPool: every checkout opens a dedicated connection and closes it on
    release, so each worker owns exactly one connection for its lifetime.
    """

    engine = create_engine(
        sqlite_url(db_path, read_only=True),
        connect_args={"timeout": 30},
        poolclass=NullPool,
    )
    event.listen(engine, "connect", _set_reader_pragmas)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
