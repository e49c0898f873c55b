"""
Unit tests for the aggregation engine.

Tests cover:
- Recent message cap and ordering
- Daily-active dedup window
- Action recording independent of the dedup window
- Parser gating (both patterns required)
- Independent (legacy) policy
- Save notification
"""

from datetime import datetime, timedelta, timezone

import pytest

from service.tally_server.aggregate.engine import (
    AggregationEngine,
    IngestPayload,
    apply_event,
)
from service.tally_server.aggregate.model import Aggregate
from service.tally_server.aggregate.parser import NoEvent, RegistrationAndAction

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def both_text(user_id: str = "42", name: str = "Alice", amount: int = 10) -> str:
    return (
        f"🎉Neuer Nutzer gestartet!\nID: {user_id}\nName: {name}\n"
        f"Aktion: 💰 Paypal für {amount}€"
    )


class FakeSyncEngine:
    """Holds the aggregate and counts save requests."""

    def __init__(self):
        self.aggregate = Aggregate()
        self.save_requests = 0

    def schedule_save(self):
        self.save_requests += 1


class TestAggregationEngine:
    """Tests for AggregationEngine.ingest."""

    @pytest.fixture
    def sync(self):
        return FakeSyncEngine()

    @pytest.fixture
    def engine(self, sync):
        return AggregationEngine(sync)

    def test_recent_messages_capped_newest_first(self, engine, sync):
        """More than 50 payloads keep exactly the 50 newest, newest first."""
        for i in range(60):
            engine.ingest(IngestPayload(author="bot", text=f"msg {i}"), now=T0 + timedelta(seconds=i))

        messages = sync.aggregate.recent_messages
        assert len(messages) == 50
        assert [m.text for m in messages] == [f"msg {i}" for i in range(59, 9, -1)]

    def test_observed_at_uses_payload_timestamp(self, engine, sync):
        """observedAt comes from the message timestamp when present."""
        sent = datetime(2024, 4, 30, 8, 0, tzinfo=timezone.utc)
        engine.ingest(IngestPayload(author="bot", text="hi", timestamp=sent), now=T0)

        assert sync.aggregate.recent_messages[0].observed_at == sent.isoformat()
        assert sync.aggregate.recent_messages[0].author == "bot"

    def test_observed_at_falls_back_to_now(self, engine, sync):
        """Without a timestamp the processing time is recorded."""
        engine.ingest(IngestPayload(author="", text="hi"), now=T0)
        assert sync.aggregate.recent_messages[0].observed_at == T0.isoformat()

    def test_dedup_window(self, engine, sync):
        """Second event within 24h is not counted, one after 24h is."""
        engine.ingest(IngestPayload(author="bot", text=both_text()), now=T0)
        engine.ingest(IngestPayload(author="bot", text=both_text()), now=T0 + timedelta(hours=23))
        assert sum(sync.aggregate.daily_active_counts.values()) == 1

        engine.ingest(IngestPayload(author="bot", text=both_text()), now=T0 + timedelta(hours=25))
        assert sum(sync.aggregate.daily_active_counts.values()) == 2

    def test_dedup_window_measured_from_last_seen(self, engine, sync):
        """The window restarts with every registration."""
        engine.ingest(IngestPayload(author="bot", text=both_text()), now=T0)
        engine.ingest(IngestPayload(author="bot", text=both_text()), now=T0 + timedelta(hours=20))
        engine.ingest(IngestPayload(author="bot", text=both_text()), now=T0 + timedelta(hours=30))

        assert sum(sync.aggregate.daily_active_counts.values()) == 1

    def test_daily_count_keyed_by_processing_date(self, engine, sync):
        """Counter key is the UTC date of the processing time."""
        engine.ingest(IngestPayload(author="bot", text=both_text()), now=T0)
        assert sync.aggregate.daily_active_counts == {"2024-05-01": 1}

    def test_actions_not_deduplicated(self, engine, sync):
        """Both events in the window append an action."""
        engine.ingest(IngestPayload(author="bot", text=both_text(amount=10)), now=T0)
        engine.ingest(
            IngestPayload(author="bot", text=both_text(amount=15)), now=T0 + timedelta(hours=1)
        )

        assert [a.amount for a in sync.aggregate.actions] == [10, 15]
        assert sum(sync.aggregate.daily_active_counts.values()) == 1

    def test_user_upsert_refreshes_name_and_last_seen(self, engine, sync):
        """Name and lastSeenAt are overwritten even inside the window."""
        engine.ingest(IngestPayload(author="bot", text=both_text(name="Alice")), now=T0)
        later = T0 + timedelta(hours=2)
        engine.ingest(IngestPayload(author="bot", text=both_text(name="Alicia")), now=later)

        user = sync.aggregate.users["42"]
        assert user.name == "Alicia"
        assert user.last_seen_at == later

    def test_last_seen_never_moves_backwards(self, engine, sync):
        """An earlier processing time keeps last_seen_at but refreshes the name."""
        engine.ingest(IngestPayload(author="bot", text=both_text(name="Alice")), now=T0)
        engine.ingest(
            IngestPayload(author="bot", text=both_text(name="Alicia")),
            now=T0 - timedelta(hours=1),
        )

        user = sync.aggregate.users["42"]
        assert user.last_seen_at == T0
        assert user.name == "Alicia"
        assert sum(sync.aggregate.daily_active_counts.values()) == 1

    def test_registration_only_is_not_applied(self, engine, sync):
        """Registration without action only lands in recent messages."""
        text = "🎉Neuer Nutzer gestartet!\nID: 42\nName: Alice"
        result = engine.ingest(IngestPayload(author="bot", text=text), now=T0)

        assert result.event == NoEvent()
        assert sync.aggregate.users == {}
        assert sync.aggregate.actions == []
        assert sync.aggregate.daily_active_counts == {}
        assert sync.aggregate.recent_messages[0].text == text

    def test_ingest_result(self, engine):
        """Result reports the applied event and the counter change."""
        first = engine.ingest(IngestPayload(author="bot", text=both_text()), now=T0)
        second = engine.ingest(IngestPayload(author="bot", text=both_text()), now=T0)

        assert first.event == RegistrationAndAction(id="42", name="Alice", amount=10)
        assert first.counted_active is True
        assert second.counted_active is False

    def test_ingest_requests_save(self, engine, sync):
        """Every ingest requests a save unless told not to."""
        engine.ingest(IngestPayload(author="bot", text="a"), now=T0)
        engine.ingest(IngestPayload(author="bot", text="b"), now=T0, notify=False)

        assert sync.save_requests == 1
        assert engine.stats["ingested_count"] == 2

    def test_engine_follows_replaced_aggregate(self, engine, sync):
        """A reload that swaps the aggregate is picked up."""
        sync.aggregate = Aggregate()
        engine.ingest(IngestPayload(author="bot", text="x"), now=T0)
        assert len(sync.aggregate.recent_messages) == 1


class TestIndependentPolicy:
    """Tests for require_both=False."""

    @pytest.fixture
    def sync(self):
        return FakeSyncEngine()

    @pytest.fixture
    def engine(self, sync):
        return AggregationEngine(sync, require_both=False)

    def test_lone_registration_applied(self, engine, sync):
        """Registration alone upserts the user and counts them."""
        engine.ingest(
            IngestPayload(author="bot", text="🎉Neuer Nutzer gestartet!\nID: 7\nName: Bob"),
            now=T0,
        )
        assert sync.aggregate.users["7"].name == "Bob"
        assert sync.aggregate.daily_active_counts == {"2024-05-01": 1}
        assert sync.aggregate.actions == []

    def test_lone_action_applied(self, engine, sync):
        """Action alone is recorded."""
        engine.ingest(IngestPayload(author="bot", text="Aktion: 🪙 Krypto für 25€"), now=T0)
        assert [a.amount for a in sync.aggregate.actions] == [25]
        assert sync.aggregate.users == {}


class TestApplyEvent:
    """Tests for the pure apply_event function."""

    def test_no_event_leaves_aggregate_untouched(self):
        """NoEvent changes nothing."""
        aggregate = Aggregate()
        assert apply_event(aggregate, NoEvent(), T0) is False
        assert aggregate.is_empty

    def test_custom_dedup_window(self):
        """The window length is configurable."""
        aggregate = Aggregate()
        event = RegistrationAndAction(id="1", name="A", amount=5)

        apply_event(aggregate, event, T0, dedup_window=timedelta(hours=1))
        counted = apply_event(aggregate, event, T0 + timedelta(hours=2), timedelta(hours=1))

        assert counted is True
        assert aggregate.daily_active_counts == {"2024-05-01": 2}
