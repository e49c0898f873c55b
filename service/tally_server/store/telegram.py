"""
Telegram message snapshot store.

This module keeps the snapshot in a single Telegram message that the bot
owns. The Bot API has no "read message" call, so reading works by
forwarding the database message into its own chat and taking the text of
the forwarded copy. Writing edits the original message in place.

Invariants:
    - Only the configured chat/message pair is ever touched
    - Every Bot API failure surfaces as StoreUnavailableError
    - "message is not modified" is a successful write (text unchanged)

How to change safely:
    - Telegram caps message text at 4096 characters, watch snapshot growth
    - Test against a throwaway chat before pointing at the live message
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .base import StoreUnavailableError

logger = logging.getLogger(__name__)

NOT_MODIFIED_MARKER = "message is not modified"


class TelegramMessageStore:
    """Telegram implementation of SnapshotStore protocol.

    Uses the Bot API over httpx.

    Attributes:
        config: TelegramConfig with bot token and database message ids

    Example:
        >>> store = TelegramMessageStore(config.telegram)
        >>> text = await store.fetch_snapshot_text()
        >>> await store.write_snapshot_text('{"recentMessages": [], ...}')
        >>> await store.close()
    """

    def __init__(self, config: Any, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the store.

        Args:
            config: TelegramConfig instance
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=f"{config.api_base_url}/bot{config.bot_token}",
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def fetch_snapshot_text(self) -> str:
        """Read the database message by forwarding it to its own chat.

        Returns:
            Message text, "" if the message has no text

        Raises:
            StoreUnavailableError: If the Bot API call fails
        """
        result = await self._call(
            "forwardMessage",
            {
                "chat_id": self.config.database_chat_id,
                "from_chat_id": self.config.database_chat_id,
                "message_id": self.config.database_message_id,
            },
        )
        text = result.get("text") if isinstance(result, dict) else None
        logger.info("Snapshot fetched from Telegram", extra={"chars": len(text or "")})
        return text or ""

    async def write_snapshot_text(self, text: str) -> None:
        """Overwrite the database message text.

        Args:
            text: Complete snapshot document

        Raises:
            StoreUnavailableError: If the Bot API call fails
        """
        try:
            await self._call(
                "editMessageText",
                {
                    "chat_id": self.config.database_chat_id,
                    "message_id": self.config.database_message_id,
                    "text": text,
                    "disable_web_page_preview": True,
                },
            )
        except StoreUnavailableError as e:
            if NOT_MODIFIED_MARKER in str(e):
                logger.debug("Snapshot unchanged, Telegram kept the message as is")
                return
            raise

        logger.info("Snapshot written to Telegram", extra={"chars": len(text)})

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        """Call a Bot API method and return its result field.

        Raises:
            StoreUnavailableError: On transport errors or ok=false replies
        """
        try:
            response = await self._client.post(f"/{method}", json=payload)
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"Telegram {method} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise StoreUnavailableError(
                f"Telegram {method} returned non-JSON response (HTTP {response.status_code})"
            ) from e

        if not isinstance(body, dict):
            raise StoreUnavailableError(
                f"Telegram {method} returned unexpected body (HTTP {response.status_code})"
            )

        if not body.get("ok"):
            description = body.get("description", f"HTTP {response.status_code}")
            raise StoreUnavailableError(f"Telegram {method} failed: {description}")

        return body.get("result")
