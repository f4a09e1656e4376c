"""Alembic migration helpers for Magz.

This is the only module in the project that imports alembic directly.
Everything else (CLI, serve) goes through the functions below.
"""

from __future__ import annotations

import shutil
import sqlite3
from pathlib import Path

from alembic import command as alembic_command
from alembic.config import Config as AlembicConfig
from alembic.script import ScriptDirectory

from .config import PROJECT_ROOT
from .database import sqlite_url


def _alembic_cfg(db_path: Path) -> AlembicConfig:
    """Build an AlembicConfig that points at our alembic.ini and ``db_path``."""
    ini_path = PROJECT_ROOT / "alembic.ini"
    cfg = AlembicConfig(str(ini_path))
    # Absolute script_location so it works regardless of the working directory.
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", sqlite_url(db_path))
    return cfg


def _backup_db(db_path: Path) -> None:
    """Copy the cache db to <name>.bak (overwrite previous backup)."""
    if db_path.exists():
        shutil.copy2(db_path, db_path.with_name(db_path.name + ".bak"))


def _alembic_version_exists(db_path: Path) -> bool:
    """Return True when the alembic_version table is present in the DB."""
    if not db_path.exists():
        return False
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='alembic_version'"
        )
        return cur.fetchone() is not None
    finally:
        conn.close()


def run_migrations(db_path: Path, backup: bool = True) -> None:
    """Run ``alembic upgrade head``.

    If *backup* is True and the database already exists, a copy is made first.
    """
    if backup:
        _backup_db(db_path)
    alembic_command.upgrade(_alembic_cfg(db_path), "head")


def stamp_if_needed(db_path: Path) -> None:
    """Stamp a database created by ``create_all`` to the current head.

    No-op when the DB is missing or already carries an alembic_version row.
    """
    if not db_path.exists():
        return
    if _alembic_version_exists(db_path):
        return
    alembic_command.stamp(_alembic_cfg(db_path), "head")


def get_status(db_path: Path) -> tuple[str | None, str]:
    """Return (current_revision, head_revision).

    current_revision is None when the DB does not exist or has never
    been stamped/migrated.
    """
    cfg = _alembic_cfg(db_path)

    # Head is a static property of the migration scripts, no DB needed.
    script = ScriptDirectory.from_config(cfg)
    head_rev: str = script.get_current_head() or "unknown"

    if not db_path.exists() or not _alembic_version_exists(db_path):
        return None, head_rev

    conn = sqlite3.connect(db_path)
    try:
        cur = conn.execute("SELECT version_num FROM alembic_version")
        row = cur.fetchone()
        return (row[0] if row else None), head_rev
    finally:
        conn.close()
