"""Logging configuration for Magz.

Provides centralized logging setup with:
- File handler with rotation (10MB, 5 backups)
- Rich console handler with colored output
- Consistent formatting across all modules
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme


def _get_data_dir() -> Path:
    """Return the data directory (same as config.DATA_DIR without circular import)."""
    env = os.environ.get("DATA_DIR")
    if env:
        return Path(env)
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


def setup_logging(log_level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """Initialize logging with file and console handlers.

    Args:
        log_level: Console logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for magz.log (defaults to DATA_DIR)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    data_dir = log_dir or _get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    log_file = data_dir / "magz.log"

    root_logger = logging.getLogger()
    # Already configured for this log file
    if any(getattr(h, "baseFilename", None) == os.path.abspath(log_file) for h in root_logger.handlers):
        return

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(levelname)-8s - %(threadName)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    custom_theme = Theme({
        "logging.level.info": "bold cyan",
    })
    console = Console(theme=custom_theme)

    console_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_time=False,
        show_path=False,
    )
    console_handler.setLevel(numeric_level)

    root_logger.setLevel(logging.DEBUG)  # Capture everything, handlers filter
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Silence noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.INFO)

    # Route alembic through our handlers
    alembic_logger = logging.getLogger("alembic")
    alembic_logger.handlers = []
    alembic_logger.propagate = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the specified module."""
    return logging.getLogger(name)
