"""
Tally Server - Telegram bot statistics with a Telegram message as storage.

This package implements a small stats service built on:
- A webhook that receives Telegram bot updates
- An in-memory Aggregate of recent messages, users, actions and daily actives
- A single Telegram message used as the durable snapshot store

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │  Telegram   │────▶│   Webhook   │────▶│  EventParser +  │
    │  (updates)  │     │  (FastAPI)  │     │ AggregationEngine│
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │ schedule_save()
                                                     ▼
                        ┌─────────────────────────────────────────┐
                        │  SyncEngine (debounce + periodic flush)  │
                        └─────────────────────────────────────────┘
                                             │
                                             ▼
                                    ┌─────────────────┐
                                    │ Telegram message │
                                    │   (snapshot)     │
                                    └─────────────────┘

Invariants:
    - The in-memory Aggregate is the working copy, the stored message is the
      durable copy
    - Every mutation goes through the SyncEngine's aggregate
    - The webhook is acknowledged before any persistence happens
    - A snapshot smaller than the guard threshold is never written

How to change safely:
    - Snapshot format changes must keep loading older documents
    - Keep all mutation synchronous so saves never see partial updates
    - Test timer behaviour with short intervals before changing defaults

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
