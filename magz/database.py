"""Database engine construction using SQLModel."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

# Seconds a connection waits on a locked database before failing
SQLITE_BUSY_TIMEOUT = 30


def sqlite_url(db_path: Path) -> str:
    return f"sqlite:///{db_path}"


def create_db_engine(db_path: Path) -> Engine:
    """Create an engine for the cache database at ``db_path``.

    check_same_thread=False is needed because scan workers, the auto refresh
    thread and request handlers all share the engine.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        sqlite_url(db_path),
        connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    """Create database tables."""
    # Import models to ensure they are registered with SQLModel.metadata
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def reset_database(db_path: Path) -> None:
    """Delete the database file (and its WAL side files)."""
    for suffix in ("", "-wal", "-shm"):
        candidate = db_path.with_name(db_path.name + suffix)
        if candidate.exists():
            candidate.unlink()
