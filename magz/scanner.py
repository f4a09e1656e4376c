"""Library scanner for Magz.

Responsible for syncing the filesystem state into the cache store.

Implements:
- discovery of archives and image directories under every library root
- incremental diffing based on modification time
- a bounded worker pool with a separate gate for thumbnail work
- tombstone sweep of entries not seen during the pass
"""

from __future__ import annotations

import dataclasses
import os
import queue
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .archive import ContainerKind, archive_kind, classify_entry, list_pages, select_cover
from .context import MagzContext
from .exceptions import ContainerError, StoreUnavailable, ThumbnailError
from .logging_config import get_logger
from .path_utils import short_path
from .thumbnails import generate_cover_thumbnail

logger = get_logger(__name__)


@dataclasses.dataclass
class ScanStats:
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    failed: int = 0
    duration: float = 0.0

    def as_dict(self) -> dict:
        return dataclasses.asdict(self)


@dataclasses.dataclass(frozen=True)
class WorkItem:
    path: Path
    kind: ContainerKind


def _should_ignore(name: str, ignore_patterns: Iterable[str]) -> bool:
    """Check if file/folder should be ignored based on patterns or macOS temp files."""
    # Skip macOS temporary/metadata files (._*)
    if name.startswith("._"):
        return True
    return name in ignore_patterns


def discover(roots: Iterable[Path], ignore_patterns: Tuple[str, ...]) -> Iterator[WorkItem]:
    """Yield every container under ``roots``, classified once.

    Directories qualify when they directly hold page images; files when they
    carry an archive extension. Everything else is skipped.
    """
    emitted: Set[Path] = set()

    def _on_error(exc: OSError) -> None:
        logger.error(f"✗ Unable to read {exc.filename}: {exc.strerror}")

    for root in roots:
        root = Path(os.path.abspath(root))
        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
            dir_path = Path(dirpath)

            # Filter out ignored directories in-place so os.walk doesn't descend
            dirnames[:] = [d for d in dirnames if not _should_ignore(d, ignore_patterns)]
            files = [f for f in filenames if not _should_ignore(f, ignore_patterns)]

            candidates = [(dir_path, classify_entry(dir_path, True, files))]
            candidates.extend((dir_path / f, archive_kind(Path(f))) for f in files)

            for path, kind in candidates:
                # Overlapping roots would otherwise yield the same item twice
                if kind is None or path in emitted:
                    continue
                emitted.add(path)
                yield WorkItem(path, kind)


def item_labels(item: WorkItem) -> Tuple[str, str]:
    """Return (category, title) derived from the item's location."""
    category = item.path.parent.name
    if item.kind.is_archive:
        return category, item.path.stem
    return category, item.path.name


def build_cover(item: WorkItem, ctx: MagzContext) -> Tuple[str, str]:
    """Return (cover_ref, cover_data) for a new or changed item.

    Failures are logged and leave cover_data empty; they never raise.
    """
    cover = item.kind.cover_sentinel if item.kind.is_archive else ""

    try:
        pages = list_pages(item.path, item.kind)
    except ContainerError as exc:
        logger.error(f"✗ {short_path(item.path)} - unreadable: {exc}")
        return cover, ""

    page = select_cover(pages)
    if page is None:
        logger.warning(f"✗ {short_path(item.path)} - no pages found")
        return cover, ""
    if not item.kind.is_archive:
        cover = page

    try:
        cover_data = generate_cover_thumbnail(
            item.path,
            item.kind,
            page,
            ctx.config.thumbnails.max_size,
            ctx.thumbnail_gate,
        )
    except (ContainerError, ThumbnailError) as exc:
        logger.error(f"✗ {short_path(item.path)} - thumbnail failed for {page}: {exc}")
        return cover, ""
    return cover, cover_data


class ScanPass:
    """Shared state of one scan pass.

    ``lock`` guards the seen set, the counters and every store write, so
    workers never interleave partial updates.
    """

    def __init__(self, ctx: MagzContext, snapshot: Dict[str, datetime]):
        self.ctx = ctx
        self.snapshot = snapshot
        self.seen: Set[str] = set()
        self.stats = ScanStats()
        self.lock = threading.Lock()

    def mark_seen(self, key: str) -> None:
        with self.lock:
            self.seen.add(key)

    def count_failure(self) -> None:
        with self.lock:
            self.stats.failed += 1

    def process(self, item: WorkItem) -> None:
        """Diff one item against the snapshot and write it back if needed."""
        key = str(item.path)
        self.mark_seen(key)

        try:
            stat = item.path.stat()
        except (FileNotFoundError, PermissionError) as exc:
            logger.error(f"✗ {short_path(item.path)} - Unable to stat: {exc}")
            self.count_failure()
            return

        last_modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        previous = self.snapshot.get(key)

        if previous is not None and previous == last_modified:
            with self.lock:
                self.stats.unchanged += 1
            return

        category, title = item_labels(item)
        cover, cover_data = build_cover(item, self.ctx)

        with self.lock:
            try:
                _, created = self.ctx.store.upsert(
                    path=key,
                    category=category,
                    title=title,
                    cover=cover,
                    cover_data=cover_data,
                    last_modified=last_modified,
                )
            except StoreUnavailable as exc:
                logger.error(f"✗ {short_path(item.path)} - Failed to save entry: {exc}")
                self.stats.failed += 1
                return

            if created:
                self.stats.created += 1
            else:
                self.stats.updated += 1

        thumb_status = "✓" if cover_data else "✗"
        action = "new" if created else "updated"
        logger.debug(f"{thumb_status} {short_path(item.path)} ({action})")

    def sweep(self) -> None:
        """Delete entries present at pass start but not seen during the pass."""
        for key in sorted(set(self.snapshot) - self.seen):
            try:
                removed = self.ctx.store.delete(key)
            except StoreUnavailable as exc:
                logger.error(f"✗ Failed to remove {key}: {exc}")
                continue
            if removed:
                self.stats.deleted += 1
                logger.debug(f"[-] Removed: {key}")


def _worker(scan_pass: ScanPass, work_queue: "queue.Queue[Optional[WorkItem]]") -> None:
    while True:
        item = work_queue.get()
        try:
            if item is None:
                return
            scan_pass.process(item)
        except Exception as exc:
            logger.exception(f"✗ Unexpected error while scanning {item.path}: {exc}")
            scan_pass.count_failure()
        finally:
            work_queue.task_done()


def _producer(
    roots: Iterable[Path],
    ignore_patterns: Tuple[str, ...],
    work_queue: "queue.Queue[Optional[WorkItem]]",
    worker_count: int,
    discovered: List[int],
) -> None:
    try:
        for item in discover(roots, ignore_patterns):
            work_queue.put(item)
            discovered[0] += 1
    except Exception as exc:
        logger.exception(f"✗ Discovery stopped early: {exc}")
    finally:
        # One sentinel per worker; sent even if discovery blew up
        for _ in range(worker_count):
            work_queue.put(None)


def scan_library(ctx: MagzContext) -> ScanStats:
    """Run one full scan pass and return its statistics.

    Does not take the scan lock; use trigger_scan() wherever passes may overlap.

    :raises StoreUnavailable: when the cache snapshot cannot be read.
    """
    started = time.perf_counter()
    roots = ctx.config.library_paths
    scanner_cfg = ctx.config.scanner

    try:
        snapshot = dict(ctx.store.list_all())
    except StoreUnavailable:
        logger.error("✗ Cache store unavailable, scan aborted")
        raise

    logger.info(f"[SCAN] Scanning {len(roots)} librar{'y' if len(roots) == 1 else 'ies'} ({len(snapshot)} cached)")
    scan_pass = ScanPass(ctx, snapshot)
    work_queue: "queue.Queue[Optional[WorkItem]]" = queue.Queue(maxsize=scanner_cfg.queue_size)
    discovered = [0]

    threads = [
        threading.Thread(
            target=_producer,
            args=(roots, scanner_cfg.ignore_patterns, work_queue, scanner_cfg.workers, discovered),
            name="magz-discover",
            daemon=True,
        )
    ]
    threads.extend(
        threading.Thread(
            target=_worker,
            args=(scan_pass, work_queue),
            name=f"magz-scan-{i}",
            daemon=True,
        )
        for i in range(scanner_cfg.workers)
    )
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    scan_pass.sweep()

    stats = scan_pass.stats
    stats.duration = time.perf_counter() - started
    logger.info(
        f"✓ Cache updated in {stats.duration:.2f}s, {discovered[0]} items: "
        f"{stats.created} new, {stats.updated} updated, {stats.deleted} removed"
        + (f", {stats.failed} failed" if stats.failed else "")
    )
    return stats


def trigger_scan(ctx: MagzContext, wait: bool = True) -> Optional[ScanStats]:
    """Run a scan pass unless it would overlap another one.

    With ``wait=False`` the call returns None right away when another pass
    holds the scan lock (used by the periodic refresher and the HTTP API).
    """
    if not ctx.scan_lock.acquire(blocking=wait):
        logger.info("[SCAN] Scan already in progress, skipping")
        return None
    try:
        return scan_library(ctx)
    finally:
        ctx.scan_lock.release()
