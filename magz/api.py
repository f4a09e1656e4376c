"""FastAPI JSON server for Magz.

Exposes:
- GET  /api/library              (all catalog entries, by title)
- GET  /api/library/{entry_id}
- GET  /api/pages?id=            (page URLs for one entry)
- GET  /api/thumbnail/{entry_id} (stored cover thumbnail as JPEG)
- GET  /api/health
- POST /api/scan                 (run a scan pass now)
- GET  /media?path=&page=        (one page of a container, or a plain file)
"""

from __future__ import annotations

import os
import socket
import time
from typing import List, NoReturn, Optional
from urllib.parse import urlencode

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import FileResponse

from . import __version__
from .context import MagzContext
from .exceptions import (
    ContainerUnreadable,
    DecodeFailed,
    EntryNotFound,
    MagzError,
    PageNotFound,
    StoreUnavailable,
    Unauthorized,
)
from .library import get_entry, list_entry_pages, list_library, read_page
from .logging_config import get_logger
from .models import LibraryItemRead
from .path_utils import authorize_path
from .scanner import trigger_scan
from .thumbnails import decode_data_uri

logger = get_logger(__name__)

PAGE_CACHE_CONTROL = "public, max-age=86400"


def _ctx(request: Request) -> MagzContext:
    return request.app.state.ctx


def _http_error(exc: MagzError) -> NoReturn:
    """Translate a read-path failure into an HTTP error response."""
    if isinstance(exc, Unauthorized):
        logger.warning(f"Unauthorized access attempt: {exc}")
        raise HTTPException(status_code=403, detail="forbidden") from exc
    if isinstance(exc, (PageNotFound, EntryNotFound)):
        raise HTTPException(status_code=404, detail="not found") from exc
    if isinstance(exc, StoreUnavailable):
        logger.error(f"Cache store unavailable: {exc}")
        raise HTTPException(status_code=503, detail="cache unavailable") from exc
    if isinstance(exc, (ContainerUnreadable, DecodeFailed)):
        logger.error(f"Cannot read container: {exc}")
        raise HTTPException(status_code=500, detail="cannot read container") from exc
    logger.error(f"Request failed: {exc}")
    raise HTTPException(status_code=500, detail="internal server error") from exc


def media_href(path: str, page: str) -> str:
    return "/media?" + urlencode({"path": path, "page": page})


def create_app(ctx: MagzContext) -> FastAPI:
    """Build the HTTP app around an existing context."""
    app = FastAPI(title="Magz", version=__version__)
    app.state.ctx = ctx
    app.state.started_at = time.monotonic()

    @app.get("/api/library", response_model=List[LibraryItemRead])
    def api_library(request: Request, response: Response):
        """All catalog entries; missing thumbnails are backfilled in the background."""
        try:
            entries = list_library(_ctx(request))
        except MagzError as exc:
            _http_error(exc)
        response.headers["Cache-Control"] = "no-cache"
        return [LibraryItemRead.from_entry(e) for e in entries]

    @app.get("/api/library/{entry_id:int}", response_model=LibraryItemRead)
    def api_library_entry(request: Request, entry_id: int):
        try:
            entry = get_entry(_ctx(request), entry_id)
        except MagzError as exc:
            _http_error(exc)
        return LibraryItemRead.from_entry(entry)

    @app.get("/api/pages", response_model=List[str])
    def api_pages(request: Request, response: Response, id: int = Query(...)):
        """Media URLs for every page of an entry, in reading order."""
        try:
            entry, pages = list_entry_pages(_ctx(request), id)
        except MagzError as exc:
            _http_error(exc)
        response.headers["Cache-Control"] = "public, max-age=3600"
        return [media_href(entry.path, page) for page in pages]

    @app.get("/api/thumbnail/{entry_id:int}")
    def api_thumbnail(request: Request, entry_id: int):
        try:
            entry = get_entry(_ctx(request), entry_id)
        except MagzError as exc:
            _http_error(exc)
        if not entry.cover_data:
            raise HTTPException(status_code=404, detail="Thumbnail not found")
        return Response(
            content=decode_data_uri(entry.cover_data),
            media_type="image/jpeg",
            headers={"Cache-Control": "no-cache"},
        )

    @app.get("/media")
    def media(
        request: Request,
        path: str = Query(...),
        page: Optional[str] = Query(None),
    ):
        """Serve one page of a container, or a plain file when no page is given."""
        ctx = _ctx(request)
        if page is not None:
            try:
                page_data = read_page(ctx, path, page)
            except MagzError as exc:
                _http_error(exc)
            return Response(
                content=page_data.data,
                media_type=page_data.content_type,
                headers={"Cache-Control": PAGE_CACHE_CONTROL},
            )

        try:
            file_path = authorize_path(path, ctx.library_paths)
        except Unauthorized as exc:
            _http_error(exc)
        if not file_path.is_file():
            raise HTTPException(status_code=404, detail="not found")
        return FileResponse(file_path, headers={"Cache-Control": PAGE_CACHE_CONTROL})

    @app.get("/api/health")
    def api_health(request: Request):
        ctx = _ctx(request)
        return {
            "status": "ok",
            "version": __version__,
            "uptime": round(time.monotonic() - request.app.state.started_at, 1),
            "scanning": ctx.scan_in_progress(),
        }

    @app.post("/api/scan")
    def api_scan(request: Request):
        """Run a scan pass now; 409 when one is already running."""
        try:
            stats = trigger_scan(_ctx(request), wait=False)
        except MagzError as exc:
            _http_error(exc)
        if stats is None:
            raise HTTPException(status_code=409, detail="scan already in progress")
        return stats.as_dict()

    return app


def _get_lan_ip() -> Optional[str]:
    """Return this machine's LAN IP (for the startup URL when binding to 0.0.0.0)."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError:
        return None


def run_server(ctx: MagzContext, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the FastAPI app with Uvicorn."""
    import uvicorn

    effective_host = host or ctx.config.server.host
    effective_port = port or ctx.config.server.port

    public_host = (_get_lan_ip() or effective_host) if effective_host == "0.0.0.0" else effective_host
    logger.info(f"Magz running at http://{public_host}:{effective_port} (pid {os.getpid()})")

    uvicorn.run(
        create_app(ctx),
        host=effective_host,
        port=effective_port,
        log_level="info",
        log_config=None,
    )
