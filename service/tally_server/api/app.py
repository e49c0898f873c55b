"""
FastAPI application factory for Tally Server.

This module creates the main FastAPI app with:
- Snapshot store, SyncEngine and AggregationEngine lifecycle management
- Webhook, stats, logs and health routes
- Static file serving for the dashboard
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .._version import __version__
from ..aggregate import AggregationEngine
from ..config import ServerConfig
from ..store import SnapshotStore, create_snapshot_store
from ..sync import SyncEngine
from .render_client import RenderLogClient
from .routes import router

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[ServerConfig] = None,
    store: Optional[SnapshotStore] = None,
    render_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server configuration (loaded from env if not provided)
        store: Snapshot store (built from config if not provided)
        render_transport: Optional httpx transport for the Render client

    Returns:
        Configured FastAPI app
    """
    config = config or ServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Load the snapshot before serving, flush on shutdown."""
        snapshot_store = store or create_snapshot_store(config)
        sync_engine = SyncEngine(
            snapshot_store,
            debounce_seconds=config.sync.debounce_seconds,
            flush_interval_seconds=config.sync.flush_interval_seconds,
            min_snapshot_chars=config.sync.min_snapshot_chars,
            flush_on_shutdown=config.sync.flush_on_shutdown,
        )
        aggregation_engine = AggregationEngine(
            sync_engine,
            require_both=config.ingest.require_both_patterns,
            recent_limit=config.ingest.recent_message_limit,
            dedup_window=timedelta(hours=config.ingest.dedup_window_hours),
        )
        render_client = RenderLogClient(config.render, transport=render_transport)

        await sync_engine.start()

        app.state.config = config
        app.state.sync_engine = sync_engine
        app.state.aggregation_engine = aggregation_engine
        app.state.render_client = render_client

        try:
            yield
        finally:
            await sync_engine.stop()
            await render_client.close()
            await snapshot_store.close()

    app = FastAPI(
        title="Tally Server",
        description="Telegram bot statistics backed by a Telegram message snapshot",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(router)

    static_dir = Path(config.http.static_dir)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")
    else:
        logger.debug(f"Static directory {static_dir} not found, not serving assets")

    return app
