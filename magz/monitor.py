"""Periodic library refresh for Magz.

A background thread re-runs the scanner every `refresh_interval` minutes.
Ticks that land while a pass is still running are skipped, never queued.
"""

from __future__ import annotations

from threading import Event, Thread
from typing import Optional

from .context import MagzContext
from .exceptions import MagzError
from .logging_config import get_logger
from .scanner import trigger_scan

logger = get_logger(__name__)


class AutoRefresher(Thread):
    """Daemon thread triggering a non-blocking scan at a fixed interval."""

    def __init__(self, ctx: MagzContext, interval_seconds: Optional[float] = None):
        super().__init__(name="MagzAutoRefresh", daemon=True)
        self.ctx = ctx
        self.interval = (
            interval_seconds
            if interval_seconds is not None
            else ctx.config.refresh_interval_seconds
        )
        self.ticks = 0
        self._stop_event = Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.ticks += 1
            try:
                stats = trigger_scan(self.ctx, wait=False)
            except MagzError as exc:
                logger.error(f"Scheduled scan failed: {exc}")
                continue
            except Exception as exc:
                logger.exception(f"Unexpected error during scheduled scan: {exc}")
                continue
            if stats is None:
                logger.debug("Scheduled scan skipped, previous pass still running")

    def stop(self) -> None:
        self._stop_event.set()


def start_auto_refresh(ctx: MagzContext, interval_seconds: Optional[float] = None) -> AutoRefresher:
    """Start the periodic refresh thread and return it (call stop()/join() to end)."""
    refresher = AutoRefresher(ctx, interval_seconds)
    refresher.start()
    logger.info(f"Auto refresh every {refresher.interval / 60:g} min")
    return refresher
