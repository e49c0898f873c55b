"""
Sync module for Tally Server.

This module keeps the in-memory Aggregate durable:
- Load the snapshot once at startup
- Debounced save after mutations
- Periodic safety flush
- Size guard against overwriting the stored copy with a reset aggregate

Invariants:
    - Only one write against the store at a time
    - Persistence never blocks or fails ingestion
    - Divergence between memory and store is bounded by the flush interval
"""

from .engine import SaveOutcome, SyncEngine, SyncState
from .scheduler import DebounceTimer, PeriodicTask

__all__ = ["SyncEngine", "SyncState", "SaveOutcome", "DebounceTimer", "PeriodicTask"]
