"""Read-path services: catalog listing, page listing and page reading.

Keeps read logic separate from routes. Page order is natural sort and is
recomputed from the container on every call; nothing about pages is cached.
"""

from __future__ import annotations

from pathlib import Path
from typing import List

from .archive import (
    ARCHIVE_COVER_SENTINELS,
    ContainerKind,
    PageData,
    classify_path,
    list_pages as container_pages,
    read_page as container_page,
)
from .context import MagzContext
from .exceptions import ContainerError, ContainerUnreadable, StoreUnavailable, ThumbnailError
from .logging_config import get_logger
from .models import LibraryEntry
from .path_utils import authorize_path
from .thumbnails import generate_cover_thumbnail

logger = get_logger(__name__)


def needs_backfill(entry: LibraryEntry) -> bool:
    """Directory entries with a known cover page but no stored thumbnail."""
    return not entry.cover_data and bool(entry.cover) and entry.cover not in ARCHIVE_COVER_SENTINELS


def backfill_thumbnail(ctx: MagzContext, entry: LibraryEntry) -> bool:
    """Regenerate and store the thumbnail of one directory entry.

    Returns True when a thumbnail was stored.
    """
    try:
        cover_data = generate_cover_thumbnail(
            Path(entry.path),
            ContainerKind.DIRECTORY,
            entry.cover,
            ctx.config.thumbnails.max_size,
            ctx.thumbnail_gate,
        )
        return ctx.store.set_cover_data(entry.id, cover_data, expected_cover=entry.cover)
    except (ContainerError, ThumbnailError, StoreUnavailable) as exc:
        logger.debug(f"Failed to generate cover for {entry.path}/{entry.cover}: {exc}")
        return False


def _run_backfill(ctx: MagzContext, entry: LibraryEntry) -> None:
    try:
        backfill_thumbnail(ctx, entry)
    finally:
        with ctx.backfill_lock:
            ctx.pending_backfills.discard(entry.id)


def schedule_backfill(ctx: MagzContext, entry: LibraryEntry) -> bool:
    """Queue a fire-and-forget backfill unless one is already pending."""
    with ctx.backfill_lock:
        if entry.id in ctx.pending_backfills:
            return False
        ctx.pending_backfills.add(entry.id)
    try:
        ctx.submit_background(_run_backfill, ctx, entry)
    except RuntimeError:
        # Executor already shut down
        with ctx.backfill_lock:
            ctx.pending_backfills.discard(entry.id)
        return False
    return True


def list_library(ctx: MagzContext) -> List[LibraryEntry]:
    """All catalog entries ordered by title.

    Entries missing a thumbnail are returned as they are; the thumbnail is
    generated in the background and shows up on a later listing.
    """
    entries = ctx.store.list_entries()
    for entry in entries:
        if needs_backfill(entry):
            schedule_backfill(ctx, entry)
    return entries


def backfill_missing_thumbnails(ctx: MagzContext, regenerate: bool = False) -> int:
    """Synchronously (re)generate directory thumbnails. Returns how many were stored."""
    entries = ctx.store.list_entries() if regenerate else ctx.store.list_missing_thumbnails()
    candidates = [e for e in entries if e.cover and e.cover not in ARCHIVE_COVER_SENTINELS]

    total = len(candidates)
    logger.info(f"{total} entries to process for thumbnails")

    generated = 0
    for idx, entry in enumerate(candidates, start=1):
        logger.debug(f"[{idx}/{total}] {entry.path}")
        if backfill_thumbnail(ctx, entry):
            generated += 1
    logger.info(f"Thumbnail generation complete: {generated}/{total}.")
    return generated


def resolve_container(ctx: MagzContext, path: str) -> tuple[Path, ContainerKind]:
    """Authorize ``path`` and classify it.

    :raises Unauthorized: path outside the library roots
    :raises ContainerUnreadable: path is not a container
    """
    container_path = authorize_path(path, ctx.library_paths)
    kind = classify_path(container_path)
    if kind is None:
        raise ContainerUnreadable(f"Not a readable container: {container_path}")
    return container_path, kind


def list_pages(ctx: MagzContext, path: str) -> List[str]:
    container_path, kind = resolve_container(ctx, path)
    return container_pages(container_path, kind)


def read_page(ctx: MagzContext, path: str, page_id: str) -> PageData:
    container_path, kind = resolve_container(ctx, path)
    return container_page(container_path, kind, page_id)


def get_entry(ctx: MagzContext, entry_id: int) -> LibraryEntry:
    return ctx.store.get_by_id(entry_id)


def list_entry_pages(ctx: MagzContext, entry_id: int) -> tuple[LibraryEntry, List[str]]:
    """Pages of a cataloged entry, looked up by id."""
    entry = get_entry(ctx, entry_id)
    return entry, list_pages(ctx, entry.path)
