"""
Tests for persisted user events and the streaks computed from them.
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from services.activity_streaks import (
    EXERCISE_COMPLETED,
    JOURNAL_CREATED,
    QUOTE_DELIVERED,
    QUOTE_VIEWED,
    count_events_by_type,
    get_activity_streaks,
    get_journal_streaks,
    list_user_events,
    record_user_event,
)

TODAY = date(2024, 3, 15)


def _at(days_ago: int, hour: int = 12) -> datetime:
    day = TODAY - timedelta(days=days_ago)
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


class TestRecordUserEvent:
    def test_records_event(self, db_session):
        event = record_user_event(db_session, JOURNAL_CREATED, _at(0), related_entity_id="j1", details={"words": 120})
        db_session.commit()

        assert event.id
        stored = list_user_events(db_session)
        assert [(e.event_type, e.related_entity_id) for e in stored] == [(JOURNAL_CREATED, "j1")]
        assert stored[0].details == {"words": 120}

    def test_unknown_type_rejected(self, db_session):
        with pytest.raises(ValueError, match="Unknown event type"):
            record_user_event(db_session, "quote_teleported")

    def test_defaults_to_now(self, db_session):
        event = record_user_event(db_session, QUOTE_VIEWED)
        assert event.occurred_at is not None

    def test_list_most_recent_first_and_filtered(self, db_session):
        record_user_event(db_session, JOURNAL_CREATED, _at(2))
        record_user_event(db_session, QUOTE_VIEWED, _at(1))
        record_user_event(db_session, JOURNAL_CREATED, _at(0))
        db_session.commit()

        journal = list_user_events(db_session, event_type=JOURNAL_CREATED)
        assert len(journal) == 2
        assert journal[0].occurred_at > journal[1].occurred_at
        assert len(list_user_events(db_session, limit=1)) == 1

    def test_counts_by_type(self, db_session):
        for days_ago in range(3):
            record_user_event(db_session, EXERCISE_COMPLETED, _at(days_ago))
        record_user_event(db_session, QUOTE_VIEWED, _at(0))
        db_session.commit()

        assert count_events_by_type(db_session) == {EXERCISE_COMPLETED: 3, QUOTE_VIEWED: 1}


class TestStreaks:
    def test_mixed_activity_counts_toward_one_streak(self, db_session):
        record_user_event(db_session, QUOTE_DELIVERED, _at(0))
        record_user_event(db_session, JOURNAL_CREATED, _at(1))
        record_user_event(db_session, EXERCISE_COMPLETED, _at(2))
        db_session.commit()

        summary = get_activity_streaks(db_session, today=TODAY)

        assert summary.current_streak == 3
        assert summary.longest_streak == 3

    def test_non_streak_events_ignored(self, db_session):
        record_user_event(db_session, QUOTE_VIEWED, _at(0))
        db_session.commit()

        assert get_activity_streaks(db_session, today=TODAY).current_streak == 0

    def test_journal_streak_only_counts_entries(self, db_session):
        record_user_event(db_session, JOURNAL_CREATED, _at(0))
        record_user_event(db_session, QUOTE_DELIVERED, _at(1))
        record_user_event(db_session, JOURNAL_CREATED, _at(2))
        record_user_event(db_session, JOURNAL_CREATED, _at(3))
        db_session.commit()

        journal = get_journal_streaks(db_session, today=TODAY)

        assert journal.current_streak == 1
        assert journal.longest_streak == 2
        assert get_activity_streaks(db_session, today=TODAY).current_streak == 4

    def test_zone_decides_the_day(self, db_session):
        # 03:00 UTC on the 15th is still the 14th in Los Angeles.
        record_user_event(db_session, JOURNAL_CREATED, datetime(2024, 3, 15, 3, 0, tzinfo=timezone.utc))
        record_user_event(db_session, JOURNAL_CREATED, datetime(2024, 3, 14, 20, 0, tzinfo=timezone.utc))
        db_session.commit()

        assert get_journal_streaks(db_session, today=TODAY).current_streak == 2
        la = get_journal_streaks(db_session, zone=ZoneInfo("America/Los_Angeles"), today=date(2024, 3, 14))
        assert la.current_streak == 1
        assert la.active_days == 1

    def test_empty(self, db_session):
        summary = get_activity_streaks(db_session, today=TODAY)
        assert summary.current_streak == 0
        assert summary.last_active_date is None
