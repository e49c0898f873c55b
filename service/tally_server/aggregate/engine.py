"""
Aggregation engine - applies parsed events to the Aggregate.

Every payload with text is recorded in recent_messages. Payloads that
pass the parser gate additionally update users, actions and the daily
active counter.

Invariants:
    - Mutation is synchronous: a save never observes a half-applied event
    - A daily-active increment needs an unknown user or one last seen more
      than the dedup window before now
    - The user record and the action are written even inside the window
    - A user's last_seen_at never moves backwards
    - No I/O happens here; persistence is only requested (schedule_save)

How to change safely:
    - Keep every mutation path going through AggregationEngine.ingest
    - Test the dedup window with explicit timestamps, not wall clock
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from .model import (
    RECENT_MESSAGE_LIMIT,
    ActionRecord,
    Aggregate,
    RecentMessage,
    UserRecord,
    date_key,
    format_timestamp,
)
from .parser import Action, NoEvent, ParsedEvent, Registration, RegistrationAndAction, parse

if TYPE_CHECKING:
    from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)

DEDUP_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class IngestPayload:
    """One inbound message.

    Attributes:
        author: Sender name (may be empty)
        text: Message text
        timestamp: When the message was sent, if known
    """

    author: str
    text: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class IngestResult:
    """Outcome of ingesting one payload.

    Attributes:
        event: Gated event that was applied (NoEvent if none)
        counted_active: Whether the daily-active counter was incremented
    """

    event: ParsedEvent
    counted_active: bool = False


def record_message(
    aggregate: Aggregate,
    message: RecentMessage,
    limit: int = RECENT_MESSAGE_LIMIT,
) -> None:
    """Prepend message to recent_messages and enforce the cap."""
    aggregate.recent_messages.insert(0, message)
    del aggregate.recent_messages[limit:]


def register_user(
    aggregate: Aggregate,
    registration: Registration,
    now: datetime,
    dedup_window: timedelta = DEDUP_WINDOW,
) -> bool:
    """Upsert the user and count them as active when outside the window.

    Returns:
        True if dailyActiveCounts was incremented
    """
    existing = aggregate.users.get(registration.id)
    counted = existing is None or (now - existing.last_seen_at) > dedup_window
    if counted:
        day = date_key(now)
        aggregate.daily_active_counts[day] = aggregate.daily_active_counts.get(day, 0) + 1

    aggregate.users[registration.id] = UserRecord(
        id=registration.id,
        name=registration.name,
        last_seen_at=max(existing.last_seen_at, now) if existing else now,
    )
    return counted


def record_action(aggregate: Aggregate, action: Action, now: datetime) -> None:
    """Append the action. Actions are never deduplicated."""
    aggregate.actions.append(ActionRecord(amount=action.amount, occurred_at=now))


def apply_event(
    aggregate: Aggregate,
    event: ParsedEvent,
    now: datetime,
    dedup_window: timedelta = DEDUP_WINDOW,
) -> bool:
    """Apply a gated event to the aggregate.

    Returns:
        True if dailyActiveCounts was incremented
    """
    if isinstance(event, RegistrationAndAction):
        counted = register_user(aggregate, event.registration, now, dedup_window)
        record_action(aggregate, event.action, now)
        return counted
    if isinstance(event, Registration):
        return register_user(aggregate, event, now, dedup_window)
    if isinstance(event, Action):
        record_action(aggregate, event, now)
    return False


class AggregationEngine:
    """Applies inbound payloads to the SyncEngine's aggregate.

    The engine reads the aggregate through the SyncEngine on every call,
    so a reload swaps in the new aggregate without rewiring.

    Example:
        >>> engine = AggregationEngine(sync_engine)
        >>> engine.ingest(IngestPayload(author="Bot", text=text))
    """

    def __init__(
        self,
        sync_engine: "SyncEngine",
        require_both: bool = True,
        recent_limit: int = RECENT_MESSAGE_LIMIT,
        dedup_window: timedelta = DEDUP_WINDOW,
    ) -> None:
        """Initialize the engine.

        Args:
            sync_engine: Owner of the aggregate and of save scheduling
            require_both: Only apply payloads with registration and action
            recent_limit: Cap for recent_messages
            dedup_window: Window for daily-active deduplication
        """
        self.sync_engine = sync_engine
        self.require_both = require_both
        self.recent_limit = recent_limit
        self.dedup_window = dedup_window
        self._ingested_count = 0

    @property
    def aggregate(self) -> Aggregate:
        return self.sync_engine.aggregate

    def ingest(
        self,
        payload: IngestPayload,
        now: Optional[datetime] = None,
        notify: bool = True,
    ) -> IngestResult:
        """Record the payload and apply the event it carries.

        Args:
            payload: Inbound message
            now: Processing time (defaults to current UTC time)
            notify: Call schedule_save() afterwards. The webhook passes
                False and schedules after acknowledging.

        Returns:
            IngestResult describing what was applied
        """
        now = now or datetime.now(timezone.utc)
        aggregate = self.aggregate

        record_message(
            aggregate,
            RecentMessage(
                author=payload.author,
                text=payload.text,
                observed_at=format_timestamp(payload.timestamp or now),
            ),
            limit=self.recent_limit,
        )

        event = parse(payload.text, require_both=self.require_both)
        counted = apply_event(aggregate, event, now, self.dedup_window)
        self._ingested_count += 1

        if not isinstance(event, NoEvent):
            logger.info(
                "Applied event",
                extra={"event": type(event).__name__, "counted_active": counted},
            )

        if notify:
            self.sync_engine.schedule_save()

        return IngestResult(event=event, counted_active=counted)

    @property
    def stats(self) -> dict:
        return {"ingested_count": self._ingested_count}
