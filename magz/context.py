"""Application context for Magz.

One MagzContext is built at startup and passed to the scanner, the read-path
services, the auto refresher and the HTTP app. It owns everything that would
otherwise be process-wide state: config, cache store, the thumbnail gate,
the scan lock and the background executor.
"""

from __future__ import annotations

import dataclasses
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Set

from sqlalchemy.engine import Engine

from .config import MagzConfig
from .database import create_db_engine, init_db
from .logging_config import get_logger
from .repository import CacheStore

logger = get_logger(__name__)


@dataclasses.dataclass
class MagzContext:
    config: MagzConfig
    store: CacheStore
    # Caps simultaneous decode/resize/encode work across scan workers and backfills
    thumbnail_gate: threading.BoundedSemaphore
    # Held for the whole of a scan pass; passes never overlap
    scan_lock: threading.Lock
    background: ThreadPoolExecutor
    pending_backfills: Set[int] = dataclasses.field(default_factory=set)
    backfill_lock: threading.Lock = dataclasses.field(default_factory=threading.Lock)

    @property
    def library_paths(self):
        return self.config.library_paths

    def scan_in_progress(self) -> bool:
        return self.scan_lock.locked()

    def submit_background(self, fn: Callable[..., object], *args) -> Future:
        return self.background.submit(fn, *args)

    def close(self, wait: bool = True) -> None:
        """Drain background tasks and release the database engine."""
        self.background.shutdown(wait=wait)
        self.store.engine.dispose()


def build_context(config: MagzConfig, engine: Optional[Engine] = None) -> MagzContext:
    """Create the store (and schema) and the concurrency primitives for ``config``."""
    if engine is None:
        engine = create_db_engine(config.database_path)
    init_db(engine)

    logger.debug(
        f"Context ready: {len(config.library_paths)} root(s), "
        f"{config.scanner.workers} workers, {config.scanner.thumbnail_workers} thumbnail slots"
    )
    return MagzContext(
        config=config,
        store=CacheStore(engine),
        thumbnail_gate=threading.BoundedSemaphore(config.scanner.thumbnail_workers),
        scan_lock=threading.Lock(),
        background=ThreadPoolExecutor(max_workers=1, thread_name_prefix="magz-backfill"),
    )
