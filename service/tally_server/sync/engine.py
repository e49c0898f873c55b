"""
Sync engine for Tally Server.

The SyncEngine owns the Aggregate and keeps it durable in the snapshot
store. It:
1. Loads the snapshot once at startup (empty aggregate on any failure)
2. Debounces saves after mutations (quiet period, arming replaces)
3. Flushes on a fixed interval so continuous input cannot starve saves
4. Refuses to write snapshots below the size guard
5. Never runs two writes against the store at the same time

State machine:
    IDLE --mutation--> PENDING_SAVE --timer--> SAVING --done--> IDLE
    (IDLE|PENDING_SAVE) --periodic tick--> SAVING
    SAVING --trigger--> one follow-up save after the current one
    DEGRADED: store unreachable at load; cleared by the first good save

Invariants:
    - Serialization happens without suspending, so saves see whole events
    - Store failures are logged and retried only by the next trigger
    - An undersized snapshot is never written

How to change safely:
    - Keep store calls the only awaits inside the save path
    - Test guard and coalescing with the in-memory store
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ..aggregate.model import Aggregate
from ..aggregate.snapshot import (
    DEFAULT_MIN_SNAPSHOT_CHARS,
    MalformedSnapshotError,
    decode_snapshot,
    encode_snapshot,
)
from ..store.base import SnapshotStore, StoreError
from .scheduler import DebounceTimer, PeriodicTask

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """Observable state of the SyncEngine."""

    IDLE = "idle"
    PENDING_SAVE = "pending_save"
    SAVING = "saving"
    DEGRADED = "degraded"


class SaveOutcome(Enum):
    """Result of a save request."""

    WRITTEN = "written"
    SKIPPED_UNDERSIZED = "skipped_undersized"
    FAILED = "failed"
    COALESCED = "coalesced"


class SyncEngine:
    """Owns the Aggregate and synchronizes it with the snapshot store.

    Attributes:
        store: Snapshot store backend
        aggregate: The live Aggregate
        debounce_seconds: Quiet period before a mutation-triggered save
        flush_interval_seconds: Interval of the periodic safety flush
        min_snapshot_chars: Snapshots shorter than this are not written
        flush_on_shutdown: Save once more in stop()

    Example:
        >>> engine = SyncEngine(store)
        >>> await engine.start()   # load + periodic flush
        >>> engine.schedule_save()
        >>> await engine.stop()
    """

    def __init__(
        self,
        store: SnapshotStore,
        debounce_seconds: float = 10.0,
        flush_interval_seconds: float = 300.0,
        min_snapshot_chars: Optional[int] = None,
        flush_on_shutdown: bool = True,
    ) -> None:
        """Initialize the sync engine.

        Args:
            store: SnapshotStore instance
            debounce_seconds: Quiet period for the debounce timer
            flush_interval_seconds: Periodic flush interval
            min_snapshot_chars: Size guard (default: just above an empty snapshot)
            flush_on_shutdown: Whether stop() performs a final save
        """
        self.store = store
        self.debounce_seconds = debounce_seconds
        self.flush_interval_seconds = flush_interval_seconds
        self.min_snapshot_chars = (
            DEFAULT_MIN_SNAPSHOT_CHARS if min_snapshot_chars is None else min_snapshot_chars
        )
        self.flush_on_shutdown = flush_on_shutdown

        self.aggregate = Aggregate()

        self._debounce = DebounceTimer(self._on_debounce_elapsed, name="snapshot-debounce")
        self._periodic = PeriodicTask(
            self._on_periodic_tick, flush_interval_seconds, name="snapshot-flush"
        )
        self._save_lock = asyncio.Lock()
        self._save_requested = False
        self._degraded = False
        self._running = False

        self._loaded = False
        self._save_count = 0
        self._skip_count = 0
        self._failure_count = 0
        self._last_saved_at: Optional[datetime] = None

    @property
    def state(self) -> SyncState:
        """Current state, derived from timers and the save lock."""
        if self._save_lock.locked():
            return SyncState.SAVING
        if self._debounce.is_armed:
            return SyncState.PENDING_SAVE
        if self._degraded:
            return SyncState.DEGRADED
        return SyncState.IDLE

    async def start(self) -> None:
        """Load the snapshot and start the periodic flush."""
        if self._running:
            logger.warning("SyncEngine already running")
            return

        await self.load()
        self._periodic.start()
        self._running = True
        logger.info(
            "SyncEngine started",
            extra={
                "debounce_seconds": self.debounce_seconds,
                "flush_interval_seconds": self.flush_interval_seconds,
                "min_snapshot_chars": self.min_snapshot_chars,
            },
        )

    async def stop(self) -> None:
        """Stop timers and optionally save one last time."""
        if not self._running:
            return

        logger.info("Stopping SyncEngine")
        await self._periodic.stop()
        await self._debounce.close()

        if self.flush_on_shutdown:
            async with self._save_lock:
                await self._save_once("shutdown")

        self._running = False

    async def load(self) -> bool:
        """Replace the aggregate with the stored snapshot.

        Any failure leaves an empty aggregate; startup is never blocked.

        Returns:
            True if a snapshot was loaded
        """
        try:
            text = await self.store.fetch_snapshot_text()
        except StoreError as e:
            logger.warning(f"Snapshot store unavailable, starting empty: {e}")
            return self._reset(degraded=True)
        except Exception as e:
            logger.error(f"Unexpected error loading snapshot, starting empty: {e}", exc_info=True)
            return self._reset(degraded=True)

        if not text.strip():
            logger.info("No snapshot stored, starting empty")
            return self._reset(degraded=False)

        try:
            aggregate = decode_snapshot(text)
        except MalformedSnapshotError as e:
            logger.warning(f"Stored snapshot unusable, starting empty: {e}")
            return self._reset(degraded=False)

        self.aggregate = aggregate
        self._degraded = False
        self._loaded = True
        logger.info(
            "Snapshot loaded",
            extra={
                "chars": len(text),
                "users": len(aggregate.users),
                "actions": len(aggregate.actions),
                "recent_messages": len(aggregate.recent_messages),
            },
        )
        return True

    def schedule_save(self) -> None:
        """Request a save once mutations quiet down."""
        self._debounce.arm(self.debounce_seconds)
        logger.debug("Save scheduled", extra={"delay_seconds": self.debounce_seconds})

    async def save(self, trigger: str = "manual") -> SaveOutcome:
        """Save the aggregate unless a save is already running.

        A call during a running save marks one follow-up save, run by the
        current holder right after it finishes.

        Args:
            trigger: Label for logging (debounce, periodic, manual, ...)

        Returns:
            Outcome of the last save attempt, or COALESCED
        """
        if self._save_lock.locked():
            self._save_requested = True
            logger.debug("Save already running, coalescing", extra={"trigger": trigger})
            return SaveOutcome.COALESCED

        async with self._save_lock:
            outcome = await self._save_once(trigger)
            while self._save_requested:
                self._save_requested = False
                outcome = await self._save_once("coalesced")
        return outcome

    async def _save_once(self, trigger: str) -> SaveOutcome:
        text = encode_snapshot(self.aggregate)

        if len(text) < self.min_snapshot_chars:
            self._skip_count += 1
            logger.warning(
                "Snapshot below size guard, not writing",
                extra={
                    "trigger": trigger,
                    "chars": len(text),
                    "min_snapshot_chars": self.min_snapshot_chars,
                },
            )
            return SaveOutcome.SKIPPED_UNDERSIZED

        try:
            await self.store.write_snapshot_text(text)
        except StoreError as e:
            self._failure_count += 1
            logger.error(f"Failed to write snapshot ({trigger}): {e}")
            return SaveOutcome.FAILED
        except Exception as e:
            self._failure_count += 1
            logger.error(f"Unexpected error writing snapshot ({trigger}): {e}", exc_info=True)
            return SaveOutcome.FAILED

        self._save_count += 1
        self._last_saved_at = datetime.now(timezone.utc)
        if self._degraded:
            logger.info("Snapshot store reachable again")
        self._degraded = False
        logger.info("Snapshot saved", extra={"trigger": trigger, "chars": len(text)})
        return SaveOutcome.WRITTEN

    async def _on_debounce_elapsed(self) -> None:
        await self.save("debounce")

    async def _on_periodic_tick(self) -> None:
        # The flush covers whatever the debounce timer was waiting for.
        self._debounce.cancel()
        await self.save("periodic")

    def _reset(self, degraded: bool) -> bool:
        self.aggregate = Aggregate()
        self._degraded = degraded
        self._loaded = False
        return False

    @property
    def stats(self) -> dict[str, Any]:
        """Get sync engine statistics."""
        return {
            "state": self.state.value,
            "running": self._running,
            "loaded": self._loaded,
            "save_count": self._save_count,
            "skip_count": self._skip_count,
            "failure_count": self._failure_count,
            "last_saved_at": self._last_saved_at.isoformat() if self._last_saved_at else None,
        }
