"""Read-only projections of the Aggregate for the stats endpoint."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Tuple

from .model import Aggregate

TRACKED_AMOUNTS: Tuple[int, ...] = (5, 10, 15, 25, 30)
STATS_WINDOW_DAYS = 30


def action_counts(
    aggregate: Aggregate, tracked_amounts: Iterable[int] = TRACKED_AMOUNTS
) -> Dict[str, int]:
    """Count actions per amount. Amounts outside tracked_amounts are left out."""
    counts = {amount: 0 for amount in tracked_amounts}
    for action in aggregate.actions:
        if action.amount in counts:
            counts[action.amount] += 1
    return {str(amount): count for amount, count in counts.items()}


def user_list(aggregate: Aggregate) -> List[Dict[str, str]]:
    """Users as {id, name}, sorted by name."""
    users = sorted(aggregate.users.values(), key=lambda u: (u.name.casefold(), u.id))
    return [{"id": u.id, "name": u.name} for u in users]


def daily_active_series(
    aggregate: Aggregate, today: date, window_days: int = STATS_WINDOW_DAYS
) -> Dict[str, int]:
    """Daily active counts for the window ending today, oldest first, zero-filled."""
    series = {}
    for offset in range(window_days - 1, -1, -1):
        day = (today - timedelta(days=offset)).isoformat()
        series[day] = aggregate.daily_active_counts.get(day, 0)
    return series


def build_stats(
    aggregate: Aggregate,
    today: date,
    tracked_amounts: Iterable[int] = TRACKED_AMOUNTS,
    window_days: int = STATS_WINDOW_DAYS,
) -> Dict[str, Any]:
    """Full stats response body."""
    return {
        "recentMessages": [m.to_dict() for m in aggregate.recent_messages],
        "stats": {
            "actionCounts": action_counts(aggregate, tracked_amounts),
            "userList": user_list(aggregate),
            "dailyActiveSeries": daily_active_series(aggregate, today, window_days),
        },
    }
