"""
Aggregate data model.

The Aggregate is the single root object holding all derived state. It is
created once per process by the SyncEngine (loaded or empty) and mutated
only by the AggregationEngine.

Invariants:
    - recent_messages is newest-first and never longer than the cap
    - daily_active_counts keys are YYYY-MM-DD strings
    - users[id].last_seen_at only moves forward
    - actions is append-only

How to change safely:
    - New fields need defaults so older snapshots still load
    - Keep to_dict() keys stable, they are the persisted format
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

RECENT_MESSAGE_LIMIT = 50


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts the "Z" suffix and treats naive values as UTC.

    Raises:
        ValueError: If value is not an ISO-8601 timestamp
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC."""
    return value.astimezone(timezone.utc).isoformat()


def date_key(value: datetime) -> str:
    """Calendar date (UTC) of value as YYYY-MM-DD."""
    return value.astimezone(timezone.utc).date().isoformat()


@dataclass(frozen=True)
class RecentMessage:
    """A raw message as it was received.

    Attributes:
        author: Sender first name or chat title
        text: Message text
        observed_at: When the message was sent (display string)
    """

    author: str
    text: str
    observed_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {"author": self.author, "text": self.text, "observedAt": self.observed_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RecentMessage:
        if not isinstance(data["text"], str):
            raise TypeError("message text must be a string")
        return cls(
            author=str(data.get("author") or ""),
            text=data["text"],
            observed_at=str(data.get("observedAt") or ""),
        )


@dataclass(frozen=True)
class UserRecord:
    """A user known from a registration event.

    Attributes:
        id: External user identifier
        name: Display name from the latest registration
        last_seen_at: Processing time of the latest registration
    """

    id: str
    name: str
    last_seen_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "lastSeenAt": format_timestamp(self.last_seen_at)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> UserRecord:
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            last_seen_at=parse_timestamp(data["lastSeenAt"]),
        )


@dataclass(frozen=True)
class ActionRecord:
    """A recorded action (payout) amount.

    Attributes:
        amount: Integer amount, not range checked
        occurred_at: Processing time of the action event
    """

    amount: int
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": self.amount, "occurredAt": format_timestamp(self.occurred_at)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ActionRecord:
        return cls(
            amount=int(data["amount"]),
            occurred_at=parse_timestamp(data["occurredAt"]),
        )


@dataclass
class Aggregate:
    """All derived statistics, held in process memory.

    Attributes:
        recent_messages: Newest-first raw messages, capped
        users: User id -> UserRecord
        actions: Every recorded action, oldest first
        daily_active_counts: YYYY-MM-DD -> users active that day
    """

    recent_messages: List[RecentMessage] = field(default_factory=list)
    users: Dict[str, UserRecord] = field(default_factory=dict)
    actions: List[ActionRecord] = field(default_factory=list)
    daily_active_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted document shape."""
        return {
            "recentMessages": [m.to_dict() for m in self.recent_messages],
            "users": {user_id: u.to_dict() for user_id, u in self.users.items()},
            "actions": [a.to_dict() for a in self.actions],
            "dailyActiveCounts": dict(self.daily_active_counts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Aggregate:
        """Create from the persisted document shape.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed
        """
        return cls(
            recent_messages=[RecentMessage.from_dict(m) for m in data["recentMessages"]],
            users={str(k): UserRecord.from_dict(v) for k, v in data["users"].items()},
            actions=[ActionRecord.from_dict(a) for a in data["actions"]],
            daily_active_counts={
                str(k): int(v) for k, v in data["dailyActiveCounts"].items()
            },
        )

    @property
    def is_empty(self) -> bool:
        return not (
            self.recent_messages or self.users or self.actions or self.daily_active_counts
        )
