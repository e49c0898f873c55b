"""
Snapshot store abstraction for Tally Server.

This module provides a pluggable store for the serialized Aggregate:
- Telegram message (production)
- In-memory (testing, and fallback when Telegram is not configured)

Stores move opaque text only. Parsing and validation of the snapshot
live in aggregate.snapshot.

Invariants:
    - A store holds exactly one snapshot document
    - Writes replace the document as a whole
    - Transport failures raise StoreUnavailableError, never partial writes

How to change safely:
    - New backends must implement the SnapshotStore protocol
    - Keep store calls the only suspension points of the SyncEngine
"""

from .base import (
    SnapshotStore,
    StoreError,
    StoreUnavailableError,
    create_snapshot_store,
)
from .memory import InMemorySnapshotStore
from .telegram import TelegramMessageStore

__all__ = [
    # Protocol and errors
    "SnapshotStore",
    "StoreError",
    "StoreUnavailableError",
    # Factory
    "create_snapshot_store",
    # Implementations
    "TelegramMessageStore",
    "InMemorySnapshotStore",
]
