"""
API module for Tally Server.

This module provides the external interfaces:
- Telegram webhook (ingestion)
- Stats endpoint for the dashboard
- Render log passthrough
- Health check

Invariants:
    - The webhook always answers 200, persistence happens afterwards
    - Stats are read-only projections of the aggregate
"""

from .app import create_app
from .routes import router

__all__ = ["create_app", "router"]
