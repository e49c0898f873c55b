"""
Snapshot encoding for the Aggregate.

The snapshot is a pretty-printed JSON document with four top-level keys:

    {
      "recentMessages": [{"author": ..., "text": ..., "observedAt": ...}],
      "users": {"<id>": {"id": ..., "name": ..., "lastSeenAt": ...}},
      "actions": [{"amount": 10, "occurredAt": ...}],
      "dailyActiveCounts": {"2024-05-01": 3}
    }

Documents written by the earlier deployment used different key names
(rawMessages, dailyUsage, lastLogin, value/timestamp). They are upgraded
on load.

Invariants:
    - decode_snapshot(encode_snapshot(a)) == a
    - Anything that is not a well-formed document raises MalformedSnapshotError
    - Decoding never returns more recent messages than the cap

How to change safely:
    - Add keys with defaults, never rename existing ones
    - Keep legacy upgrade working until no old snapshot can remain
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Dict

from .model import RECENT_MESSAGE_LIMIT, Aggregate

logger = logging.getLogger(__name__)

SNAPSHOT_KEYS = ("recentMessages", "users", "actions", "dailyActiveCounts")
LEGACY_KEYS = ("rawMessages", "users", "actions", "dailyUsage")


class MalformedSnapshotError(ValueError):
    """Stored text is not a valid Aggregate snapshot."""

    pass


def encode_snapshot(aggregate: Aggregate) -> str:
    """Serialize the aggregate to snapshot text."""
    return json.dumps(aggregate.to_dict(), indent=2, ensure_ascii=False)


def decode_snapshot(text: str) -> Aggregate:
    """Parse snapshot text into an Aggregate.

    Args:
        text: Stored snapshot document

    Returns:
        The decoded Aggregate

    Raises:
        MalformedSnapshotError: If text is too short, not JSON, or not the
            Aggregate shape
    """
    if len(text.strip()) < MIN_DOCUMENT_CHARS:
        raise MalformedSnapshotError(f"Snapshot too short ({len(text.strip())} chars)")

    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedSnapshotError(f"Snapshot is not valid JSON: {e}") from e
    except RecursionError as e:
        raise MalformedSnapshotError("Snapshot is nested too deeply") from e

    if not isinstance(document, dict):
        raise MalformedSnapshotError("Snapshot is not a JSON object")

    legacy = "recentMessages" not in document and all(key in document for key in LEGACY_KEYS)
    missing = [key for key in SNAPSHOT_KEYS if key not in document]
    if missing and not legacy:
        raise MalformedSnapshotError(f"Snapshot missing keys: {missing}")

    try:
        if legacy:
            logger.info("Upgrading legacy snapshot layout")
            document = _upgrade_legacy(document)
        aggregate = Aggregate.from_dict(document)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedSnapshotError(f"Snapshot has invalid content: {e}") from e

    for day, count in aggregate.daily_active_counts.items():
        if not _is_date_key(day):
            raise MalformedSnapshotError(f"Invalid date key in dailyActiveCounts: {day!r}")
        if count < 0:
            raise MalformedSnapshotError(f"Negative daily count for {day}")

    del aggregate.recent_messages[RECENT_MESSAGE_LIMIT:]
    return aggregate


def _is_date_key(value: str) -> bool:
    if len(value) != 10:
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _upgrade_legacy(document: Dict[str, Any]) -> Dict[str, Any]:
    """Map the earlier key layout onto the current one."""
    return {
        "recentMessages": [
            {
                "author": m.get("user"),
                "text": m["text"],
                "observedAt": m.get("timestamp"),
            }
            for m in document["rawMessages"]
        ],
        "users": {
            user_id: {
                "id": u.get("id", user_id),
                "name": u.get("name"),
                "lastSeenAt": u.get("lastLogin"),
            }
            for user_id, u in document["users"].items()
        },
        "actions": [
            {"amount": a.get("value"), "occurredAt": a.get("timestamp")}
            for a in document["actions"]
        ],
        "dailyActiveCounts": document["dailyUsage"],
    }


def _compact_length(document: Dict[str, Any]) -> int:
    return len(json.dumps(document, separators=(",", ":")))


# Shortest text that could possibly be a snapshot (legacy layout included).
MIN_DOCUMENT_CHARS = min(
    _compact_length(Aggregate().to_dict()),
    _compact_length({"rawMessages": [], "users": {}, "actions": [], "dailyUsage": {}}),
)

# Serialized size of an all-empty aggregate. The save guard defaults to one
# more than this so a reset aggregate never overwrites the stored copy.
EMPTY_SNAPSHOT_CHARS = len(encode_snapshot(Aggregate()))
DEFAULT_MIN_SNAPSHOT_CHARS = EMPTY_SNAPSHOT_CHARS + 1
