"""
Base protocol and errors for the snapshot store abstraction.

This module defines the SnapshotStore protocol that all backends must
implement. A store only moves opaque text: it never interprets the
snapshot content.

Invariants:
    - fetch_snapshot_text() returns the stored text, or "" when there is none
    - write_snapshot_text() replaces the stored text as a whole
    - Transport failures are raised as StoreUnavailableError

How to change safely:
    - Protocol changes require updating all implementations
    - Keep content handling out of the stores (see aggregate.snapshot)
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import ServerConfig

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for snapshot store operations."""

    pass


class StoreUnavailableError(StoreError):
    """The remote store could not be reached or rejected the call."""

    pass


@runtime_checkable
class SnapshotStore(Protocol):
    """Protocol for snapshot store backends.

    Stores are message oriented: one remote "document" that can be read
    and overwritten, nothing more.

    Example:
        >>> store = TelegramMessageStore(config.telegram)
        >>> text = await store.fetch_snapshot_text()
        >>> await store.write_snapshot_text(text)
    """

    @abstractmethod
    async def fetch_snapshot_text(self) -> str:
        """Read the stored snapshot text.

        Returns:
            The stored text, "" if the store holds nothing

        Raises:
            StoreUnavailableError: If the store cannot be read
        """
        ...

    @abstractmethod
    async def write_snapshot_text(self, text: str) -> None:
        """Overwrite the stored snapshot text.

        Args:
            text: Complete snapshot document

        Raises:
            StoreUnavailableError: If the write did not go through
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release transport resources."""
        ...


def create_snapshot_store(config: "ServerConfig") -> SnapshotStore:
    """Factory function to create a snapshot store from configuration.

    Falls back to the in-memory store when the Telegram database message
    is not configured, so the service still runs (without durability).

    Args:
        config: Server configuration

    Returns:
        Appropriate SnapshotStore implementation
    """
    from .memory import InMemorySnapshotStore
    from .telegram import TelegramMessageStore

    if config.telegram.is_configured:
        return TelegramMessageStore(config.telegram)

    logger.warning(
        "Telegram database message not configured, snapshots are kept in memory only"
    )
    return InMemorySnapshotStore()
