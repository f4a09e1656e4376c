"""Magz CLI entry point."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from magz import __version__
from magz.api import run_server
from magz.archive import ARCHIVE_COVER_SENTINELS
from magz.config import DATA_DIR, DEFAULT_CONFIG_PATH, MagzConfig, load_config, write_default_config
from magz.context import MagzContext, build_context
from magz.database import reset_database
from magz.exceptions import ConfigError, StoreUnavailable
from magz.library import backfill_missing_thumbnails
from magz.logging_config import setup_logging
from magz.migrations import get_status, run_migrations, stamp_if_needed
from magz.monitor import start_auto_refresh
from magz.scanner import trigger_scan


app = typer.Typer(add_completion=False, help="Magz magazine library CLI")
logger = logging.getLogger("magz")

STARTUP_BANNER = r"""
 __    __     ______     ______     ______
/\ "-./  \   /\  __ \   /\  ___\   /\___  \
\ \ \-./\ \  \ \  __ \  \ \ \__ \  \/_/  /__
 \ \_\ \ \_\  \ \_\ \_\  \ \_____\   /\_____\
  \/_/  \/_/   \/_/\/_/   \/_____/   \/_____/
"""


def _ensure_config() -> MagzConfig:
    try:
        return load_config()
    except FileNotFoundError:
        typer.echo("[ERROR] config.ini not found. Run: magz init --library /path/to/magazines")
        raise typer.Exit(code=1)
    except ConfigError as exc:
        typer.echo(f"[ERROR] Configuration error: {exc}")
        raise typer.Exit(code=1)


def _start(verbose: bool = False) -> MagzContext:
    """Load config, set up logging and build the shared context."""
    config = _ensure_config()
    setup_logging("DEBUG" if verbose else config.logging.level, DATA_DIR)
    return build_context(config)


def _echo_stats(stats) -> None:
    typer.echo(
        "✓ Scan completed: "
        f"{stats.created} new, "
        f"{stats.updated} updated, "
        f"{stats.deleted} removed, "
        f"{stats.unchanged} unchanged"
        + (f", {stats.failed} failed" if stats.failed else "")
        + f" ({stats.duration:.2f}s)."
    )


@app.command()
def init(
    library: List[Path] = typer.Option(..., "--library", help="Library folder (repeatable)"),
    name: str = typer.Option("My Magazine Library", "--name", help="Library name"),
) -> None:
    """Initialize config.ini with default settings."""
    config_path = write_default_config(DEFAULT_CONFIG_PATH, library, name)
    typer.echo(f"[OK] Config created at {config_path}")


@app.command()
def scan(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every item"),
) -> None:
    """Scan all libraries and update the cache."""
    ctx = _start(verbose)
    try:
        stats = trigger_scan(ctx)
    except StoreUnavailable as exc:
        typer.echo(f"[ERROR] {exc}")
        raise typer.Exit(code=1)
    finally:
        ctx.close()
    _echo_stats(stats)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Server host"),
    port: Optional[int] = typer.Option(None, "--port", help="Server port"),
    no_refresh: bool = typer.Option(False, "--no-refresh", help="Disable periodic rescans"),
) -> None:
    """Start the HTTP server with periodic library refresh."""
    typer.echo(typer.style(STARTUP_BANNER, fg=typer.colors.CYAN, bold=True))
    ctx = _start()
    db_path = ctx.config.database_path

    # Migrations: stamp DBs created by create_all, then upgrade to head.
    stamp_if_needed(db_path)
    current, head = get_status(db_path)
    if current != head:
        logger.info(f"Migrating database {current} -> {head} ...")
        run_migrations(db_path, backup=True)
        logger.info("Migration complete.")
    else:
        logger.info(f"Database at {head} (up to date).")

    logger.info(f"Starting Magz {__version__}")
    trigger_scan(ctx)

    refresher = None
    if not no_refresh:
        refresher = start_auto_refresh(ctx)
    else:
        logger.info("Auto refresh disabled")

    try:
        run_server(ctx, host=host, port=port)
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down gracefully...")
        if refresher:
            refresher.stop()
            refresher.join()
        ctx.close()
        logger.info("Server stopped")


@app.command()
def thumbnails(
    regenerate: bool = typer.Option(False, "--regenerate", help="Regenerate all directory thumbnails"),
) -> None:
    """Generate missing (or all) directory thumbnails."""
    ctx = _start()
    try:
        generated = backfill_missing_thumbnails(ctx, regenerate=regenerate)
    finally:
        ctx.close()
    typer.echo(f"[INFO] Stored {generated} thumbnails")


@app.command()
def stats() -> None:
    """Show library statistics."""
    config = _ensure_config()
    ctx = build_context(config)
    try:
        entries = ctx.store.list_entries()
    finally:
        ctx.close()

    total = len(entries)
    categories = {e.category for e in entries}
    archives = len([e for e in entries if e.cover in ARCHIVE_COVER_SENTINELS])
    with_thumbs = len([e for e in entries if e.cover_data])
    percent = (with_thumbs / total * 100) if total else 0

    typer.echo("Library Statistics:")
    typer.echo(f"  Total items: {total}")
    typer.echo(f"  Categories: {len(categories)}")
    typer.echo(f"  Archives: {archives}")
    typer.echo(f"  Directories: {total - archives}")
    typer.echo(f"  Thumbnails: {with_thumbs} / {total} ({percent:.0f}%)")


@app.command()
def migrate(
    check: bool = typer.Option(False, "--check", help="Print status and exit (1 if not at head)"),
) -> None:
    """Run pending database migrations (or check status with --check)."""
    config = _ensure_config()
    setup_logging(config.logging.level, DATA_DIR)
    db_path = config.database_path

    current, head = get_status(db_path)

    if check:
        if current == head:
            typer.echo(f"[OK] Database at {head} (head).")
            raise typer.Exit(code=0)
        typer.echo(f"[WARN] Database behind, current: {current}, head: {head}")
        raise typer.Exit(code=1)

    if current == head:
        logger.info(f"Database already at {head} (head). Nothing to do.")
        raise typer.Exit(code=0)

    logger.info(f"Migrating database {current} -> {head} ...")
    run_migrations(db_path, backup=True)
    logger.info("Migration complete.")


@app.command()
def reset(
    confirm: bool = typer.Option(False, "--confirm", help="Confirm destructive reset"),
) -> None:
    """Delete the cache database and rebuild it from a full scan."""
    if not confirm:
        typer.echo("[ERROR] This will delete your cache database. Use --confirm.")
        raise typer.Exit(code=1)

    config = _ensure_config()
    reset_database(config.database_path)
    typer.echo("[INFO] Cache reset. Rescanning library...")

    ctx = _start()
    try:
        stats = trigger_scan(ctx)
    finally:
        ctx.close()
    _echo_stats(stats)


if __name__ == "__main__":
    app()
