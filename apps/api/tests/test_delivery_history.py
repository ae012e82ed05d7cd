"""
Tests for the delivery history tracker.

Covers:
- Record + user event + pointer move in one transaction
- Same-day duplicate rejected and fully rolled back
- Unknown schedule or quote
- Retention pruning on every call (and that a prune failure doesn't fail the delivery)
- Storage failures reported as PERSISTENCE_FAILURE
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError

from core.memory_cache import CacheType, MemoryCache
from core.result import ErrorKind
from models import DeliveredQuote, UserEvent
from services.activity_streaks import QUOTE_DELIVERED
from services.cached_schedule_store import CachedScheduleStore
from services.delivery_history import DeliveryHistoryTracker
from services.quote_schedule import Schedule

NOW = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def schedule(store, add_quote):
    add_quote("q1")
    add_quote("q2")
    return store.insert_schedule(Schedule(id="s1", scheduled_hour=9))


@pytest.fixture
def tracker(store):
    return DeliveryHistoryTracker(store, retention_days=30, zone=timezone.utc)


def _add_history(session_factory, quote_id: str, delivered_at: datetime, schedule_id: str = "s1"):
    with session_factory() as db:
        db.add(DeliveredQuote(quote_id=quote_id, schedule_id=schedule_id, delivered_at=delivered_at))
        db.commit()


class TestRecordDelivery:
    """Happy path."""

    def test_records_delivery_and_moves_pointer(self, tracker, store, schedule):
        result = tracker.record_delivery("s1", "q1", NOW)

        assert result.ok
        assert result.value.quote_id == "q1"
        assert result.value.delivered_at == NOW

        updated = store.get_schedule("s1")
        assert updated.last_delivered_quote_id == "q1"
        assert updated.last_delivery_date == NOW
        assert [r.quote_id for r in store.list_deliveries("s1")] == ["q1"]

    def test_emits_quote_delivered_event(self, tracker, schedule, db_session):
        tracker.record_delivery("s1", "q1", NOW)

        events = db_session.query(UserEvent).all()
        assert len(events) == 1
        assert events[0].event_type == QUOTE_DELIVERED
        assert events[0].related_entity_id == "q1"
        assert events[0].details == {"schedule_id": "s1"}

    def test_next_day_delivery_succeeds(self, tracker, store, schedule):
        assert tracker.record_delivery("s1", "q1", NOW).ok
        assert tracker.record_delivery("s1", "q2", NOW + timedelta(days=1)).ok

        assert store.get_schedule("s1").last_delivered_quote_id == "q2"
        assert len(store.list_deliveries("s1")) == 2


class TestDuplicateGuard:
    """At most one delivery per schedule per local day."""

    def test_same_day_second_delivery_rejected(self, tracker, store, schedule, db_session):
        assert tracker.record_delivery("s1", "q1", NOW).ok

        second = tracker.record_delivery("s1", "q2", NOW + timedelta(hours=3))

        assert second.is_failure
        assert second.kind == ErrorKind.ALREADY_DELIVERED
        # Rolled back: no orphan history row or event, pointer unchanged.
        assert [r.quote_id for r in store.list_deliveries("s1")] == ["q1"]
        assert store.get_schedule("s1").last_delivered_quote_id == "q1"
        assert db_session.query(UserEvent).count() == 1

    def test_same_day_is_local_day(self, store, schedule):
        la = ZoneInfo("America/Los_Angeles")
        tracker = DeliveryHistoryTracker(store, retention_days=30, zone=la)
        late_evening = datetime(2024, 3, 15, 5, 0, tzinfo=timezone.utc)   # 22:00 on the 14th, LA
        next_morning = datetime(2024, 3, 15, 16, 0, tzinfo=timezone.utc)  # 09:00 on the 15th, LA

        assert tracker.record_delivery("s1", "q1", late_evening).ok
        assert tracker.record_delivery("s1", "q2", next_morning).ok

    def test_unknown_schedule_is_not_found(self, tracker, store, schedule):
        result = tracker.record_delivery("missing", "q1", NOW)

        assert result.is_failure
        assert result.kind == ErrorKind.NOT_FOUND
        assert store.list_deliveries() == []

    def test_unknown_quote_is_not_found(self, tracker, store, schedule, db_session):
        result = tracker.record_delivery("s1", "no-such-quote", NOW)

        assert result.is_failure
        assert result.kind == ErrorKind.NOT_FOUND
        assert result.message == "Quote not found: no-such-quote"
        assert store.list_deliveries() == []
        assert store.get_schedule("s1").last_delivered_quote_id is None
        assert db_session.query(UserEvent).count() == 0


class TestPruning:
    """History older than the retention window is removed on write."""

    def test_prunes_old_records_keeps_recent(self, tracker, store, schedule, session_factory):
        _add_history(session_factory, "q1", NOW - timedelta(days=31))
        _add_history(session_factory, "q2", NOW - timedelta(days=29))

        assert tracker.record_delivery("s1", "q1", NOW).ok

        remaining = sorted(r.delivered_at for r in store.list_deliveries("s1"))
        assert remaining == [NOW - timedelta(days=29), NOW]

    def test_rejected_delivery_still_prunes(self, tracker, store, schedule, session_factory):
        assert tracker.record_delivery("s1", "q1", NOW).ok
        _add_history(session_factory, "q2", NOW - timedelta(days=45))

        rejected = tracker.record_delivery("s1", "q2", NOW + timedelta(hours=2))

        assert rejected.kind == ErrorKind.ALREADY_DELIVERED
        assert [r.delivered_at for r in store.list_deliveries("s1")] == [NOW]

    def test_prune_failure_does_not_fail_delivery(self, tracker, store, schedule, session_factory):
        _add_history(session_factory, "q2", NOW - timedelta(days=40))
        boom = OperationalError("DELETE FROM delivered_quote", {}, Exception("database is locked"))

        with patch.object(store, "prune_deliveries_in", side_effect=boom):
            result = tracker.record_delivery("s1", "q1", NOW)

        assert result.ok
        assert len(store.list_deliveries("s1")) == 2
        assert store.get_schedule("s1").last_delivered_quote_id == "q1"


class TestPersistenceFailure:
    def test_insert_failure_reported(self, tracker, store, schedule):
        boom = OperationalError("INSERT INTO delivered_quote", {}, Exception("disk I/O error"))

        with patch.object(store, "insert_delivery_in", side_effect=boom):
            result = tracker.record_delivery("s1", "q1", NOW)

        assert result.is_failure
        assert result.kind == ErrorKind.PERSISTENCE_FAILURE
        assert result.cause is boom
        assert store.get_schedule("s1").last_delivery_date is None


class TestCacheInvalidation:
    def test_cached_schedule_refreshed_after_delivery(self, store, schedule, fake_redis):
        cache = MemoryCache()
        cached_store = CachedScheduleStore(store, cache)
        tracker = DeliveryHistoryTracker(cached_store, retention_days=30, zone=timezone.utc)

        assert cached_store.get_schedule("s1").last_delivered_quote_id is None
        assert cache.contains(CacheType.SCHEDULE, "s1")

        assert tracker.record_delivery("s1", "q1", NOW).ok

        assert not cache.contains(CacheType.SCHEDULE, "s1")
        assert cached_store.get_schedule("s1").last_delivered_quote_id == "q1"

    def test_delivery_retires_copies_cached_by_other_processes(self, store, schedule, fake_redis):
        api_cache = MemoryCache()
        api_store = CachedScheduleStore(store, api_cache)
        worker_store = CachedScheduleStore(store, MemoryCache())
        worker = DeliveryHistoryTracker(worker_store, retention_days=30, zone=timezone.utc)

        assert api_store.get_schedule("s1").last_delivery_date is None
        assert worker.record_delivery("s1", "q1", NOW).ok

        # The api copy is still held locally but no longer served.
        assert api_cache.contains(CacheType.SCHEDULE, "s1")
        refreshed = api_store.get_schedule("s1")
        assert refreshed.last_delivery_date == NOW
        assert refreshed.last_delivered_quote_id == "q1"
