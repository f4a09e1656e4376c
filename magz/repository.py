"""Cache store for Magz.

Encapsulates database operations on the `library` table using SQLModel.
Each call opens its own short-lived Session, so one CacheStore can be shared
by scan workers, the auto refresh thread and request handlers.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, func, select

from .exceptions import EntryNotFound, StoreUnavailable
from .models import LibraryEntry, as_utc


class CacheStore:
    """Persistent mapping from absolute item path to its catalog row.

    SQLAlchemy failures surface as StoreUnavailable.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                yield session
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Cache store error: {exc}") from exc

    def list_all(self) -> List[Tuple[str, datetime]]:
        """Return every (path, last_modified) pair."""
        with self._session() as session:
            rows = session.exec(select(LibraryEntry.path, LibraryEntry.last_modified)).all()
        return [(path, as_utc(last_modified)) for path, last_modified in rows]

    def upsert(
        self,
        *,
        path: str,
        category: str,
        title: str,
        cover: str,
        cover_data: str,
        last_modified: datetime,
    ) -> Tuple[LibraryEntry, bool]:
        """Insert or update the entry for ``path``.

        Returns (entry, created). Updates keep the entry id and created_at.
        """
        with self._session() as session:
            entry = session.exec(select(LibraryEntry).where(LibraryEntry.path == path)).first()
            created = entry is None

            if created:
                entry = LibraryEntry(path=path, last_modified=last_modified)
            else:
                entry.updated_at = datetime.now(timezone.utc)

            entry.category = category
            entry.title = title
            entry.cover = cover
            entry.cover_data = cover_data
            entry.last_modified = last_modified

            session.add(entry)
            session.commit()
            session.refresh(entry)
        return entry, created

    def delete(self, path: str) -> bool:
        """Delete the entry for ``path``. Returns False if there was none."""
        with self._session() as session:
            entry = session.exec(select(LibraryEntry).where(LibraryEntry.path == path)).first()
            if entry is None:
                return False
            session.delete(entry)
            session.commit()
        return True

    def get_by_path(self, path: str) -> LibraryEntry:
        with self._session() as session:
            entry = session.exec(select(LibraryEntry).where(LibraryEntry.path == path)).first()
        if entry is None:
            raise EntryNotFound(f"No catalog entry for {path}")
        return entry

    def get_by_id(self, entry_id: int) -> LibraryEntry:
        with self._session() as session:
            entry = session.get(LibraryEntry, entry_id)
        if entry is None:
            raise EntryNotFound(f"No catalog entry with id {entry_id}")
        return entry

    def set_cover_data(self, entry_id: int, cover_data: str, expected_cover: Optional[str] = None) -> bool:
        """Store a backfilled thumbnail.

        With ``expected_cover`` the write only happens while the entry still
        points at that cover page. Returns False when nothing was written.
        """
        statement = update(LibraryEntry).where(col(LibraryEntry.id) == entry_id)
        if expected_cover is not None:
            statement = statement.where(col(LibraryEntry.cover) == expected_cover)
        statement = statement.values(cover_data=cover_data, updated_at=datetime.now(timezone.utc))
        with self._session() as session:
            result = session.connection().execute(statement)
            session.commit()
        return result.rowcount > 0

    # --- Read Methods (used by api/library/main) ---

    def list_entries(self, category: Optional[str] = None) -> List[LibraryEntry]:
        """All entries ordered by title, optionally limited to one category."""
        statement = select(LibraryEntry)
        if category is not None:
            statement = statement.where(LibraryEntry.category == category)
        with self._session() as session:
            return list(session.exec(statement.order_by(col(LibraryEntry.title), col(LibraryEntry.id))).all())

    def list_missing_thumbnails(self) -> List[LibraryEntry]:
        with self._session() as session:
            return list(session.exec(select(LibraryEntry).where(LibraryEntry.cover_data == "")).all())

    def count(self) -> int:
        with self._session() as session:
            return session.exec(select(func.count()).select_from(LibraryEntry)).one()
