"""Config management for Magz.

Reads `config.ini` from DATA_DIR (defaults to the project root, beside main.py).
The loaded MagzConfig is handed to build_context(); nothing is cached globally.
"""

from __future__ import annotations

import configparser
import dataclasses
import os
import pathlib
import re
import sys
from typing import Iterable, Optional

from .exceptions import ConfigError
from .logging_config import get_logger

logger = get_logger(__name__)


def _get_project_root() -> pathlib.Path:
    if getattr(sys, "frozen", False):
        return pathlib.Path(sys.executable).resolve().parent
    return pathlib.Path(__file__).resolve().parents[1]


PROJECT_ROOT = _get_project_root()

# DATA_DIR holds all persistent state (config.ini, magz_cache.db, magz.log).
# Set via env var for Docker; defaults to PROJECT_ROOT for standalone use.
DATA_DIR = pathlib.Path(os.environ.get("DATA_DIR", str(PROJECT_ROOT)))
DEFAULT_CONFIG_PATH = DATA_DIR / "config.ini"

DEFAULT_IGNORE_PATTERNS = (".DS_Store", "Thumbs.db", "@eaDir")


@dataclasses.dataclass
class LibraryConfig:
    paths: tuple[pathlib.Path, ...]
    name: str = "My Magazine Library"


@dataclasses.dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclasses.dataclass
class ThumbnailConfig:
    max_size: int = 400


@dataclasses.dataclass
class ScannerConfig:
    workers: int = 4
    thumbnail_workers: int = 4
    queue_size: int = 100
    refresh_interval: int = 60  # minutes
    ignore_patterns: tuple[str, ...] = DEFAULT_IGNORE_PATTERNS


@dataclasses.dataclass
class DatabaseConfig:
    path: pathlib.Path = pathlib.Path("magz_cache.db")


@dataclasses.dataclass
class LoggingConfig:
    level: str = "info"


@dataclasses.dataclass
class MagzConfig:
    library: LibraryConfig
    server: ServerConfig = dataclasses.field(default_factory=ServerConfig)
    thumbnails: ThumbnailConfig = dataclasses.field(default_factory=ThumbnailConfig)
    scanner: ScannerConfig = dataclasses.field(default_factory=ScannerConfig)
    database: DatabaseConfig = dataclasses.field(default_factory=DatabaseConfig)
    logging: LoggingConfig = dataclasses.field(default_factory=LoggingConfig)

    @property
    def library_paths(self) -> tuple[pathlib.Path, ...]:
        return self.library.paths

    @property
    def database_path(self) -> pathlib.Path:
        path = self.database.path.expanduser()
        return path if path.is_absolute() else DATA_DIR / path

    @property
    def refresh_interval_seconds(self) -> float:
        return self.scanner.refresh_interval * 60.0


def _split_list(value: str) -> tuple[str, ...]:
    """Split a comma- or newline-separated INI value."""
    return tuple(item.strip() for item in re.split(r"[\n,]", value) if item.strip())


def validate_config(config: MagzConfig) -> MagzConfig:
    """Reject configurations the scanner cannot run with.

    Raises ConfigError describing the first problem found.
    """
    if not 1 <= config.server.port <= 65535:
        raise ConfigError(f"invalid port number: {config.server.port}")
    if config.scanner.refresh_interval < 1:
        raise ConfigError(f"invalid refresh interval: {config.scanner.refresh_interval}")
    if not config.library.paths:
        raise ConfigError("no library paths specified")
    for path in config.library.paths:
        if not path.exists():
            raise ConfigError(f"library path does not exist: {path}")
    if config.scanner.workers < 1:
        raise ConfigError(f"invalid worker count: {config.scanner.workers}")
    if not 1 <= config.scanner.thumbnail_workers <= config.scanner.workers:
        raise ConfigError(
            "thumbnail_workers must be between 1 and workers "
            f"({config.scanner.thumbnail_workers} > {config.scanner.workers})"
        )
    if config.scanner.queue_size < 1:
        raise ConfigError(f"invalid queue size: {config.scanner.queue_size}")
    if config.thumbnails.max_size < 1:
        raise ConfigError(f"invalid thumbnail size: {config.thumbnails.max_size}")
    return config


def load_config(config_path: Optional[pathlib.Path] = None) -> MagzConfig:
    """Load and validate configuration from config.ini.

    Defaults to `config.ini` in DATA_DIR.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    parser = configparser.ConfigParser()
    parser.read(path, encoding="utf-8")

    try:
        library = LibraryConfig(
            paths=tuple(
                pathlib.Path(p).expanduser().absolute()
                for p in _split_list(parser.get("library", "paths", fallback=""))
            ),
            name=parser.get("library", "name", fallback="My Magazine Library"),
        )

        server = ServerConfig(
            host=parser.get("server", "host", fallback="0.0.0.0"),
            port=parser.getint("server", "port", fallback=8080),
        )

        thumbs = ThumbnailConfig(
            max_size=parser.getint("thumbnails", "max_size", fallback=400),
        )

        scanner = ScannerConfig(
            workers=parser.getint("scanner", "workers", fallback=4),
            thumbnail_workers=parser.getint("scanner", "thumbnail_workers", fallback=4),
            queue_size=parser.getint("scanner", "queue_size", fallback=100),
            refresh_interval=parser.getint("scanner", "refresh_interval", fallback=60),
            ignore_patterns=_split_list(
                parser.get(
                    "scanner",
                    "ignore_patterns",
                    fallback=",".join(DEFAULT_IGNORE_PATTERNS),
                )
            ),
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid value in {path}: {exc}") from exc

    database = DatabaseConfig(
        path=pathlib.Path(parser.get("database", "path", fallback="magz_cache.db")),
    )

    logging_cfg = LoggingConfig(
        level=parser.get("logging", "level", fallback="info").strip().lower(),
    )

    return validate_config(
        MagzConfig(
            library=library,
            server=server,
            thumbnails=thumbs,
            scanner=scanner,
            database=database,
            logging=logging_cfg,
        )
    )


def write_default_config(
    config_path: pathlib.Path,
    library_paths: Iterable[pathlib.Path],
    library_name: str,
) -> pathlib.Path:
    """Write a config.ini with default settings for the given library roots."""
    parser = configparser.ConfigParser()

    parser["library"] = {
        "paths": "\n".join(str(p.expanduser()) for p in library_paths),
        "name": library_name,
    }
    parser["server"] = {
        "host": "0.0.0.0",
        "port": "8080",
    }
    parser["thumbnails"] = {
        "max_size": "400",
    }
    parser["scanner"] = {
        "workers": "4",
        "thumbnail_workers": "4",
        "queue_size": "100",
        "refresh_interval": "60",
        "ignore_patterns": ",".join(DEFAULT_IGNORE_PATTERNS),
    }
    parser["database"] = {
        "path": "magz_cache.db",
    }
    parser["logging"] = {
        "level": "info",
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        parser.write(handle)
    logger.debug(f"Wrote default config to {config_path}")
    return config_path
