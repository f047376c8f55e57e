"""lmv FastAPI application factory."""
from __future__ import annotations

import asyncio
import logging
import webbrowser
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Iterable, Optional, Sequence

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from lmv import config
from lmv.observability import initialize as initialize_observability, shutdown as shutdown_observability
from lmv.preferences import PreferenceStore
from lmv.routers.events import events_router
from lmv.routers.files import files_router
from lmv.routers.preferences import preferences_router
from lmv.routers.share import share_router
from lmv.services.discovery import DiscoveryOptions
from lmv.services.file_registry import FileRegistry
from lmv.services.file_watcher import FileWatcher, compute_watch_roots
from lmv.services.ignore import IgnoreChecker
from lmv.services.notifier import EventBroadcaster

logger = logging.getLogger("lmv")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("lmv server starting up")
    initialize_observability(app)

    registry: FileRegistry = app.state.registry
    watcher: FileWatcher = app.state.watcher
    if app.state.watch:
        roots = await asyncio.to_thread(compute_watch_roots, registry.inputs, registry.options)
        await watcher.start(roots)

    open_url = app.state.open_url
    if open_url:
        try:
            await asyncio.to_thread(webbrowser.open, open_url)
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser: {e}")

    yield

    logger.info("lmv server shutting down")
    registry.broadcaster.close()
    await watcher.stop()
    shutdown_observability(app)


def create_app(
    inputs: Sequence[str],
    options: DiscoveryOptions,
    files: Iterable[Path],
    *,
    ignore_checker: Optional[IgnoreChecker] = None,
    preferences: Optional[PreferenceStore] = None,
    open_url: Optional[str] = None,
    watch: bool = True,
) -> FastAPI:
    """Build the app around an already-discovered file set."""
    broadcaster = EventBroadcaster(
        queue_size=config.SUBSCRIBER_QUEUE_SIZE,
        keepalive_seconds=config.KEEPALIVE_SECONDS,
    )
    registry = FileRegistry(inputs, options, files, broadcaster, ignore_checker=ignore_checker)

    app = FastAPI(
        title="lmv",
        description="Local markdown viewer API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.watcher = FileWatcher(registry)
    app.state.preferences = preferences if preferences is not None else PreferenceStore()
    app.state.open_url = open_url
    app.state.watch = watch

    app.include_router(files_router)
    app.include_router(events_router)
    app.include_router(share_router)
    app.include_router(preferences_router)

    @app.get("/api/health")
    def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "files": len(registry),
            "watcher": "running" if app.state.watcher.is_running else "stopped",
            "pendingRefresh": registry.pending_refresh,
        }

    @app.get("/", include_in_schema=False)
    def index():
        return RedirectResponse(url="/docs")

    return app
