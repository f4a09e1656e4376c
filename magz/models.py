"""SQLModel database models for Magz."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands datetimes back naive; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LibraryEntryBase(SQLModel):
    category: str = Field(default="", index=True)
    title: str = Field(default="", index=True)
    path: str = Field(unique=True, index=True)
    cover: str = ""  # page id for directories, "(cbz internal)"/"(cbr internal)" for archives
    cover_data: str = ""  # data:image/jpeg;base64,... or "" when missing
    last_modified: datetime


class LibraryEntry(LibraryEntryBase, table=True):
    __tablename__ = "library"
    # AUTOINCREMENT so ids of deleted rows are never handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class LibraryItemRead(BaseModel):
    """Catalog row as exposed to the viewer (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    category: str
    title: str
    path: str
    cover: str
    cover_data: str = PydanticField(alias="coverData")
    last_modified: datetime = PydanticField(alias="lastModified")

    @classmethod
    def from_entry(cls, entry: LibraryEntry) -> "LibraryItemRead":
        return cls(
            id=entry.id,
            category=entry.category,
            title=entry.title,
            path=entry.path,
            cover=entry.cover,
            cover_data=entry.cover_data,
            last_modified=as_utc(entry.last_modified),
        )
