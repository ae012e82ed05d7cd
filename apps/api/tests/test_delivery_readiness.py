"""
Tests for the delivery readiness evaluator and next-delivery computation.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from services.delivery_readiness import (
    delivered_on_local_day,
    is_ready,
    local_day_bounds,
    next_delivery_time,
    ready_schedules,
)
from services.quote_schedule import Schedule

UTC = timezone.utc
# 2024-03-15 is a Friday (ISO weekday 5)
FRIDAY_0930 = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def _schedule(schedule_id: str = "s1", hour: int = 9, minute: int = 0, **overrides) -> Schedule:
    return Schedule(id=schedule_id, scheduled_hour=hour, scheduled_minute=minute, **overrides)


class TestIsReady:
    """Enabled, active today, slot reached, not yet delivered today."""

    def test_ready_after_scheduled_time(self):
        assert is_ready(_schedule(), FRIDAY_0930, UTC)

    def test_ready_exactly_at_scheduled_time(self):
        assert is_ready(_schedule(minute=30), FRIDAY_0930, UTC)

    def test_future_slot_is_not_ready(self):
        assert not is_ready(_schedule(hour=10), FRIDAY_0930, UTC)

    def test_disabled_is_never_ready(self):
        assert not is_ready(_schedule(is_enabled=False), FRIDAY_0930, UTC)

    def test_delivered_today_is_not_ready(self):
        schedule = _schedule(last_delivery_date=FRIDAY_0930.replace(hour=9, minute=1))
        assert not is_ready(schedule, FRIDAY_0930, UTC)

    def test_delivered_yesterday_is_ready(self):
        schedule = _schedule(last_delivery_date=FRIDAY_0930 - timedelta(days=1))
        assert is_ready(schedule, FRIDAY_0930, UTC)

    def test_missed_slot_is_caught_later_the_same_day(self):
        late_run = FRIDAY_0930.replace(hour=22)
        assert is_ready(_schedule(hour=6), late_run, UTC)

    def test_inactive_weekday_is_not_ready(self):
        weekdays_only = frozenset({1, 2, 3, 4})
        assert not is_ready(_schedule(active_days=weekdays_only), FRIDAY_0930, UTC)
        assert is_ready(_schedule(active_days=frozenset({5})), FRIDAY_0930, UTC)

    def test_local_zone_defines_wall_clock(self):
        tokyo = ZoneInfo("Asia/Tokyo")
        # 09:30 UTC is 18:30 in Tokyo.
        assert is_ready(_schedule(hour=18), FRIDAY_0930, tokyo)
        assert not is_ready(_schedule(hour=19), FRIDAY_0930, tokyo)

    def test_local_zone_defines_same_day(self):
        la = ZoneInfo("America/Los_Angeles")
        now = datetime(2024, 3, 15, 16, 0, tzinfo=UTC)  # 09:00 PDT on the 15th
        # Delivered 2024-03-15 05:00 UTC = 22:00 PDT on the 14th: a different local day.
        schedule = _schedule(last_delivery_date=datetime(2024, 3, 15, 5, 0, tzinfo=UTC))
        assert delivered_on_local_day(schedule, now, UTC) is True
        assert delivered_on_local_day(schedule, now, la) is False
        assert is_ready(schedule, now, la)

    def test_naive_last_delivery_is_read_as_utc(self):
        schedule = _schedule(last_delivery_date=datetime(2024, 3, 15, 9, 5))
        assert not is_ready(schedule, FRIDAY_0930, UTC)


class TestReadySchedules:
    def test_returns_ids_in_input_order(self):
        schedules = [
            _schedule("late", hour=10),
            _schedule("b", hour=8),
            _schedule("off", is_enabled=False),
            _schedule("a", hour=9),
        ]
        assert ready_schedules(schedules, FRIDAY_0930, UTC) == ["b", "a"]

    def test_second_evaluation_after_delivery_is_empty(self):
        schedule = _schedule()
        assert ready_schedules([schedule], FRIDAY_0930, UTC) == ["s1"]

        delivered = schedule.with_changes(last_delivery_date=FRIDAY_0930)
        assert ready_schedules([delivered], FRIDAY_0930 + timedelta(seconds=30), UTC) == []


class TestNextDeliveryTime:
    def test_today_if_slot_ahead(self):
        assert next_delivery_time(_schedule(hour=18), FRIDAY_0930, UTC) == datetime(2024, 3, 15, 18, 0, tzinfo=UTC)

    def test_tomorrow_if_slot_passed(self):
        assert next_delivery_time(_schedule(hour=8), FRIDAY_0930, UTC) == datetime(2024, 3, 16, 8, 0, tzinfo=UTC)

    def test_skips_inactive_days(self):
        weekdays = frozenset({1, 2, 3, 4, 5})
        # Friday's slot has passed, so the next one is Monday.
        expected = datetime(2024, 3, 18, 8, 0, tzinfo=UTC)
        assert next_delivery_time(_schedule(hour=8, active_days=weekdays), FRIDAY_0930, UTC) == expected

    def test_today_already_delivered_moves_to_tomorrow(self):
        schedule = _schedule(hour=18, last_delivery_date=FRIDAY_0930)
        assert next_delivery_time(schedule, FRIDAY_0930, UTC) == datetime(2024, 3, 16, 18, 0, tzinfo=UTC)

    def test_disabled_has_no_next_delivery(self):
        assert next_delivery_time(_schedule(is_enabled=False), FRIDAY_0930, UTC) is None

    def test_result_is_in_requested_zone(self):
        paris = ZoneInfo("Europe/Paris")
        result = next_delivery_time(_schedule(hour=20), FRIDAY_0930, paris)
        assert result.tzinfo is paris
        assert (result.hour, result.minute) == (20, 0)


class TestLocalDayBounds:
    def test_utc(self):
        start, end = local_day_bounds(FRIDAY_0930, UTC)
        assert start == datetime(2024, 3, 15, tzinfo=UTC)
        assert end == datetime(2024, 3, 16, tzinfo=UTC)

    def test_offset_zone(self):
        tokyo = ZoneInfo("Asia/Tokyo")
        start, end = local_day_bounds(FRIDAY_0930, tokyo)
        assert start == datetime(2024, 3, 14, 15, 0, tzinfo=UTC)
        assert end - start == timedelta(hours=24)
