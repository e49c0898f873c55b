"""
Configuration management for Tally Server.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Without Telegram settings the server runs with an in-memory store
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep the sync defaults (10s debounce, 5min flush) unless the Bot API
      rate limits change
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return int(value)


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        static_dir: Directory served at / (skipped if missing)
    """

    host: str = "0.0.0.0"
    port: int = 10000
    static_dir: str = "public"

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "10000")),
            static_dir=os.getenv("STATIC_DIR", "public"),
        )


@dataclass(frozen=True)
class TelegramConfig:
    """Telegram snapshot store configuration.

    Attributes:
        bot_token: Bot API token
        database_chat_id: Chat holding the snapshot message
        database_message_id: Message used as the snapshot document
        api_base_url: Bot API base URL
        timeout_seconds: HTTP timeout for Bot API calls
    """

    bot_token: Optional[str] = None
    database_chat_id: Optional[str] = None
    database_message_id: Optional[int] = None
    api_base_url: str = "https://api.telegram.org"
    timeout_seconds: float = 30.0

    @property
    def is_configured(self) -> bool:
        """Whether the snapshot message can be used."""
        return bool(self.bot_token and self.database_chat_id and self.database_message_id)

    @classmethod
    def from_env(cls) -> TelegramConfig:
        """Load configuration from environment variables."""
        return cls(
            bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
            database_chat_id=os.getenv("DATABASE_CHAT_ID") or None,
            database_message_id=_env_optional_int("DATABASE_MESSAGE_ID"),
            api_base_url=os.getenv("TELEGRAM_API_URL", "https://api.telegram.org").rstrip("/"),
            timeout_seconds=float(os.getenv("TELEGRAM_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class RenderConfig:
    """Render log passthrough configuration.

    Attributes:
        api_key: Render API key
        service_id: Render service whose logs are relayed
        api_base_url: Render API base URL
        log_limit: Number of log lines requested
        timeout_seconds: HTTP timeout
    """

    api_key: Optional[str] = None
    service_id: Optional[str] = None
    api_base_url: str = "https://api.render.com"
    log_limit: int = 100
    timeout_seconds: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.service_id)

    @classmethod
    def from_env(cls) -> RenderConfig:
        """Load configuration from environment variables."""
        return cls(
            api_key=os.getenv("RENDER_API_KEY") or None,
            service_id=os.getenv("RENDER_SERVICE_ID") or None,
            api_base_url=os.getenv("RENDER_API_URL", "https://api.render.com").rstrip("/"),
            log_limit=int(os.getenv("RENDER_LOG_LIMIT", "100")),
            timeout_seconds=float(os.getenv("RENDER_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Snapshot synchronization configuration.

    Attributes:
        debounce_seconds: Quiet period before saving after a mutation
        flush_interval_seconds: Interval of the periodic safety flush
        min_snapshot_chars: Size guard (None = just above an empty snapshot)
        flush_on_shutdown: Save once more on graceful shutdown
    """

    debounce_seconds: float = 10.0
    flush_interval_seconds: float = 300.0
    min_snapshot_chars: Optional[int] = None
    flush_on_shutdown: bool = True

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load configuration from environment variables."""
        return cls(
            debounce_seconds=float(os.getenv("SYNC_DEBOUNCE_SECONDS", "10")),
            flush_interval_seconds=float(os.getenv("SYNC_FLUSH_INTERVAL_SECONDS", "300")),
            min_snapshot_chars=_env_optional_int("SYNC_MIN_SNAPSHOT_CHARS"),
            flush_on_shutdown=_env_bool("SYNC_FLUSH_ON_SHUTDOWN", "true"),
        )


@dataclass(frozen=True)
class IngestConfig:
    """Ingestion and stats configuration.

    Attributes:
        require_both_patterns: Apply only payloads with registration and action
        recent_message_limit: Cap of the recent messages list
        dedup_window_hours: Daily-active dedup window per user
        stats_window_days: Length of the daily active series
        tracked_amounts: Amounts tallied in actionCounts
    """

    require_both_patterns: bool = True
    recent_message_limit: int = 50
    dedup_window_hours: float = 24.0
    stats_window_days: int = 30
    tracked_amounts: Tuple[int, ...] = (5, 10, 15, 25, 30)

    @classmethod
    def from_env(cls) -> IngestConfig:
        """Load configuration from environment variables."""
        return cls(
            require_both_patterns=_env_bool("INGEST_REQUIRE_BOTH", "true"),
            recent_message_limit=int(os.getenv("INGEST_RECENT_LIMIT", "50")),
            dedup_window_hours=float(os.getenv("INGEST_DEDUP_WINDOW_HOURS", "24")),
            stats_window_days=int(os.getenv("STATS_WINDOW_DAYS", "30")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        http: HTTP server configuration
        telegram: Telegram snapshot store configuration
        render: Render log passthrough configuration
        sync: Snapshot synchronization configuration
        ingest: Ingestion and stats configuration
        observability: Logging configuration
    """

    http: HttpConfig = field(default_factory=HttpConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            http=HttpConfig.from_env(),
            telegram=TelegramConfig.from_env(),
            render=RenderConfig.from_env(),
            sync=SyncConfig.from_env(),
            ingest=IngestConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.sync.debounce_seconds <= 0:
            raise ValueError("SYNC_DEBOUNCE_SECONDS must be positive")
        if self.sync.flush_interval_seconds <= 0:
            raise ValueError("SYNC_FLUSH_INTERVAL_SECONDS must be positive")
        if self.sync.min_snapshot_chars is not None and self.sync.min_snapshot_chars < 0:
            raise ValueError("SYNC_MIN_SNAPSHOT_CHARS must not be negative")
        if self.ingest.recent_message_limit <= 0:
            raise ValueError("INGEST_RECENT_LIMIT must be positive")
        if self.ingest.dedup_window_hours <= 0:
            raise ValueError("INGEST_DEDUP_WINDOW_HOURS must be positive")
        if self.ingest.stats_window_days <= 0:
            raise ValueError("STATS_WINDOW_DAYS must be positive")

        telegram_values = (
            self.telegram.bot_token,
            self.telegram.database_chat_id,
            self.telegram.database_message_id,
        )
        if any(telegram_values) and not all(telegram_values):
            raise ValueError(
                "TELEGRAM_BOT_TOKEN, DATABASE_CHAT_ID and DATABASE_MESSAGE_ID "
                "must be set together"
            )

        if not self.render.is_configured:
            logger.warning("Render API not configured, /api/logs will return errors")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "http_port": self.http.port,
                "static_dir": self.http.static_dir,
                "telegram_store": self.telegram.is_configured,
                "database_chat_id": self.telegram.database_chat_id,
                "render_logs": self.render.is_configured,
                "debounce_seconds": self.sync.debounce_seconds,
                "flush_interval_seconds": self.sync.flush_interval_seconds,
                "require_both_patterns": self.ingest.require_both_patterns,
                "log_level": self.observability.log_level,
            },
        )
