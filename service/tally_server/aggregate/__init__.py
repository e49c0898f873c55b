"""
Aggregate module for Tally Server - parsing, aggregation and snapshots.

This module handles:
- The in-memory Aggregate data model
- Event extraction from bot message text
- Applying events (dedup window, recent message cap)
- Snapshot encoding and validation
- Read-only stats projections

Invariants:
    - Parsing and aggregation never raise on bad input text
    - All mutation is synchronous and performed on the SyncEngine's aggregate
    - Snapshots round-trip exactly

How to change safely:
    - Keep the parser policy (both patterns required) in gate() only
    - Add snapshot fields with defaults
"""

from .engine import AggregationEngine, IngestPayload, IngestResult, apply_event, record_message
from .model import ActionRecord, Aggregate, RecentMessage, UserRecord
from .parser import (
    Action,
    NoEvent,
    ParsedEvent,
    Registration,
    RegistrationAndAction,
    extract,
    gate,
    parse,
)
from .snapshot import MalformedSnapshotError, decode_snapshot, encode_snapshot
from .stats import build_stats

__all__ = [
    "Aggregate",
    "RecentMessage",
    "UserRecord",
    "ActionRecord",
    "AggregationEngine",
    "IngestPayload",
    "IngestResult",
    "apply_event",
    "record_message",
    "ParsedEvent",
    "NoEvent",
    "Registration",
    "Action",
    "RegistrationAndAction",
    "extract",
    "gate",
    "parse",
    "MalformedSnapshotError",
    "encode_snapshot",
    "decode_snapshot",
    "build_stats",
]
