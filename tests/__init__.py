"""
Tally Server Test Suite.

This package contains:
- unit/: Unit tests (no network, timers of a few milliseconds at most)
- integration/: SyncEngine with the in-memory store, HTTP API over ASGI
"""
