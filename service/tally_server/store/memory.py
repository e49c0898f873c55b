"""
In-memory snapshot store implementation for testing.

This module provides a simple in-memory store for:
- Unit tests
- Integration tests of the SyncEngine
- Local development without a Telegram bot

Invariants:
    - All data is lost on process exit
    - Behaves like the Telegram store from the caller's point of view

How to change safely:
    - This is mostly test code, but it is also the fallback store when
      Telegram is not configured
    - Keep interface compatible with SnapshotStore protocol
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from .base import StoreUnavailableError

logger = logging.getLogger(__name__)


class InMemorySnapshotStore:
    """In-memory implementation of SnapshotStore.

    Attributes:
        text: Currently stored snapshot text
        writes: Every text successfully written, in order

    Example:
        >>> store = InMemorySnapshotStore(initial_text=snapshot)
        >>> await store.fetch_snapshot_text()
    """

    def __init__(self, initial_text: str = "", write_delay: float = 0.0) -> None:
        """Initialize in-memory store.

        Args:
            initial_text: Snapshot text present before the first fetch
            write_delay: Seconds each write takes (to exercise overlap)
        """
        self.text = initial_text
        self.write_delay = write_delay
        self.writes: List[str] = []
        self.fetch_count = 0
        self.write_attempts = 0
        self.max_concurrent_writes = 0
        self._active_writes = 0
        self._fetch_failure: Optional[Exception] = None
        self._write_failure: Optional[Exception] = None

    async def fetch_snapshot_text(self) -> str:
        """Return the stored text."""
        self.fetch_count += 1
        if self._fetch_failure is not None:
            raise self._fetch_failure
        return self.text

    async def write_snapshot_text(self, text: str) -> None:
        """Replace the stored text."""
        self.write_attempts += 1
        self._active_writes += 1
        self.max_concurrent_writes = max(self.max_concurrent_writes, self._active_writes)
        try:
            if self.write_delay:
                await asyncio.sleep(self.write_delay)
            if self._write_failure is not None:
                raise self._write_failure
            self.text = text
            self.writes.append(text)
        finally:
            self._active_writes -= 1

        logger.debug("Snapshot written to in-memory store", extra={"chars": len(text)})

    async def close(self) -> None:
        """Nothing to release."""
        pass

    # Testing helpers

    def fail_fetch(self, exception: Optional[Exception] = None) -> None:
        """Make every following fetch raise (StoreUnavailableError by default)."""
        self._fetch_failure = exception or StoreUnavailableError("store offline")

    def fail_writes(self, exception: Optional[Exception] = None) -> None:
        """Make every following write raise (StoreUnavailableError by default)."""
        self._write_failure = exception or StoreUnavailableError("store offline")

    def recover(self) -> None:
        """Clear injected failures."""
        self._fetch_failure = None
        self._write_failure = None

    @property
    def write_count(self) -> int:
        """Number of successful writes."""
        return len(self.writes)

    async def wait_for_writes(self, count: int, timeout: float = 5.0) -> bool:
        """Wait until at least count writes happened (testing helper).

        Returns:
            True if count reached, False if timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if self.write_count >= count:
                return True
            await asyncio.sleep(0.01)
        return self.write_count >= count
