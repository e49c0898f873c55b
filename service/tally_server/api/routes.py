"""
API routes for Tally Server.

Endpoints:
- POST /telegram/webhook: ingest a Telegram update, always answered 200
- GET /api/stats: recent messages and derived stats
- GET /api/logs: Render log passthrough
- GET /health: sync engine status
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from ..aggregate import AggregationEngine, IngestPayload, build_stats
from ..config import ServerConfig
from ..sync import SyncEngine
from .render_client import RenderLogClient, RenderLogError, RenderNotConfiguredError

logger = logging.getLogger(__name__)

router = APIRouter()

NOT_CONFIGURED_MESSAGE = "Render API key or service id is not configured."
LOGS_FAILED_MESSAGE = "Failed to fetch Render logs. See server logs for details."


# --- Request Models ---


class TelegramUser(BaseModel):
    """Sender of a message."""

    first_name: Optional[str] = None


class TelegramChat(BaseModel):
    """Chat a message was posted in."""

    title: Optional[str] = None


class TelegramMessage(BaseModel):
    """The fields of a Telegram message the webhook uses."""

    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    date: Optional[int] = None
    sender: Optional[TelegramUser] = Field(None, alias="from")
    chat: Optional[TelegramChat] = None

    @property
    def author(self) -> str:
        if self.sender and self.sender.first_name:
            return self.sender.first_name
        if self.chat and self.chat.title:
            return self.chat.title
        return ""

    @property
    def sent_at(self) -> Optional[datetime]:
        if self.date is None:
            return None
        return datetime.fromtimestamp(self.date, tz=timezone.utc)


class TelegramUpdate(BaseModel):
    """Telegram webhook update (messages and channel posts)."""

    message: Optional[TelegramMessage] = None
    channel_post: Optional[TelegramMessage] = None


# --- Dependencies ---


def get_config(request: Request) -> ServerConfig:
    """Get server config from app state."""
    return request.app.state.config


def get_sync_engine(request: Request) -> SyncEngine:
    """Get sync engine from app state."""
    return request.app.state.sync_engine


def get_aggregation_engine(request: Request) -> AggregationEngine:
    """Get aggregation engine from app state."""
    return request.app.state.aggregation_engine


def get_render_client(request: Request) -> RenderLogClient:
    """Get Render log client from app state."""
    return request.app.state.render_client


async def _schedule_save(sync_engine: SyncEngine) -> None:
    sync_engine.schedule_save()


# --- Routes ---


@router.post("/telegram/webhook", response_class=PlainTextResponse)
async def telegram_webhook(
    update: TelegramUpdate,
    background_tasks: BackgroundTasks,
    engine: AggregationEngine = Depends(get_aggregation_engine),
    sync_engine: SyncEngine = Depends(get_sync_engine),
) -> str:
    """Ingest a bot update. The save is scheduled after the response is sent."""
    message = update.message or update.channel_post
    if message is None or not message.text:
        return "OK"

    try:
        engine.ingest(
            IngestPayload(author=message.author, text=message.text, timestamp=message.sent_at),
            notify=False,
        )
    except Exception as e:
        logger.error(f"Failed to ingest update: {e}", exc_info=True)
        return "OK"

    background_tasks.add_task(_schedule_save, sync_engine)
    return "OK"


@router.get("/api/stats")
async def get_stats(
    config: ServerConfig = Depends(get_config),
    sync_engine: SyncEngine = Depends(get_sync_engine),
) -> dict:
    """Recent messages plus action, user and daily active stats."""
    return build_stats(
        sync_engine.aggregate,
        today=datetime.now(timezone.utc).date(),
        tracked_amounts=config.ingest.tracked_amounts,
        window_days=config.ingest.stats_window_days,
    )


@router.get("/api/logs", response_class=PlainTextResponse)
async def get_logs(client: RenderLogClient = Depends(get_render_client)) -> PlainTextResponse:
    """Relay recent Render service logs."""
    try:
        text = await client.fetch_logs()
    except RenderNotConfiguredError:
        return PlainTextResponse(NOT_CONFIGURED_MESSAGE, status_code=500)
    except RenderLogError as e:
        logger.error(f"Render log fetch failed: {e}")
        return PlainTextResponse(LOGS_FAILED_MESSAGE, status_code=500)
    return PlainTextResponse(text)


@router.get("/health")
async def health(sync_engine: SyncEngine = Depends(get_sync_engine)) -> dict:
    """Service status with sync engine statistics."""
    return {"status": "healthy", "service": "tally-server", "sync": sync_engine.stats}
