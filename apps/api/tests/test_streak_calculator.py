"""
Tests for the streak calculator.

Streaks are counted on calendar days in a zone; today is injected so
results don't depend on the wall clock.
"""

import random
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from services.streak_calculator import (
    current_streak,
    current_streak_from_date_strings,
    current_streak_from_dates,
    longest_streak,
    longest_streak_from_date_strings,
    longest_streak_from_dates,
    parse_date_string,
    summarize_streaks,
    to_local_date,
    unique_days_count,
)

TODAY = date(2024, 3, 15)


def _at(day: date, hour: int = 12) -> datetime:
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


def _days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


class TestCurrentStreak:
    """Current streak ends today or yesterday."""

    def test_empty_is_zero(self):
        assert current_streak([], today=TODAY) == 0

    def test_three_consecutive_days_ending_today(self):
        timestamps = [_at(TODAY), _at(_days_ago(1)), _at(_days_ago(2))]
        assert current_streak(timestamps, today=TODAY) == 3

    def test_activity_only_yesterday_is_one(self):
        assert current_streak([_at(_days_ago(1))], today=TODAY) == 1

    def test_gap_of_two_days_breaks_streak(self):
        assert current_streak([_at(_days_ago(3))], today=TODAY) == 0
        assert current_streak([_at(_days_ago(2))], today=TODAY) == 0

    def test_counts_back_until_first_gap(self):
        timestamps = [_at(TODAY), _at(_days_ago(1)), _at(_days_ago(3)), _at(_days_ago(4))]
        assert current_streak(timestamps, today=TODAY) == 2

    def test_same_day_duplicates_count_once(self):
        timestamps = [_at(TODAY, 8), _at(TODAY, 9), _at(TODAY, 21), _at(_days_ago(1), 7)]
        assert current_streak(timestamps, today=TODAY) == 2

    def test_order_does_not_matter(self):
        timestamps = [_at(_days_ago(n)) for n in range(6)]
        shuffled = list(timestamps)
        random.Random(3).shuffle(shuffled)
        assert current_streak(shuffled, today=TODAY) == current_streak(timestamps, today=TODAY) == 6

    def test_epoch_milliseconds(self):
        millis = [int(_at(_days_ago(n)).timestamp() * 1000) for n in range(3)]
        assert current_streak(millis, today=TODAY) == 3

    def test_naive_datetimes_are_utc(self):
        naive = [datetime(2024, 3, 15, 23, 30), datetime(2024, 3, 14, 0, 15)]
        assert current_streak(naive, today=TODAY) == 2


class TestLongestStreak:
    def test_longest_run_with_gap(self):
        d1 = date(2024, 1, 1)
        days = [d1, d1 + timedelta(days=1), d1 + timedelta(days=2), d1 + timedelta(days=4), d1 + timedelta(days=5)]
        assert longest_streak([_at(d) for d in days]) == 3

    def test_empty_is_zero(self):
        assert longest_streak([]) == 0

    def test_single_day(self):
        assert longest_streak([_at(TODAY)]) == 1

    def test_longest_independent_of_today(self):
        old_run = [_at(date(2023, 6, 1) + timedelta(days=n)) for n in range(10)]
        assert longest_streak(old_run) == 10
        assert current_streak(old_run, today=TODAY) == 0


class TestCalendarBoundaries:
    """Day arithmetic across month, year and leap-day boundaries."""

    def test_across_month_and_year_end(self):
        dates = [date(2023, 12, 30), date(2023, 12, 31), date(2024, 1, 1)]
        assert current_streak_from_dates(dates, today=date(2024, 1, 1)) == 3
        assert longest_streak_from_dates(dates) == 3

    def test_across_leap_day(self):
        dates = [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
        assert longest_streak_from_dates(dates) == 3

    def test_across_dst_transition(self):
        zone = ZoneInfo("America/New_York")
        # Spring forward on 2024-03-10: that local day is only 23 hours long.
        timestamps = [
            datetime(2024, 3, 9, 12, tzinfo=zone),
            datetime(2024, 3, 10, 12, tzinfo=zone),
            datetime(2024, 3, 11, 12, tzinfo=zone),
        ]
        assert current_streak(timestamps, zone=zone, today=date(2024, 3, 11)) == 3


class TestTimeZones:
    """The zone decides which calendar day an instant falls on."""

    def test_to_local_date(self):
        instant = datetime(2024, 3, 15, 2, 0, tzinfo=timezone.utc)
        assert to_local_date(instant) == date(2024, 3, 15)
        assert to_local_date(instant, ZoneInfo("America/Los_Angeles")) == date(2024, 3, 14)

    def test_zone_can_split_or_merge_days(self):
        # 23:00 and 01:00 UTC are two UTC days but one day in Los Angeles.
        timestamps = [
            datetime(2024, 3, 14, 23, 0, tzinfo=timezone.utc),
            datetime(2024, 3, 15, 1, 0, tzinfo=timezone.utc),
        ]
        assert unique_days_count(timestamps) == 2
        assert unique_days_count(timestamps, ZoneInfo("America/Los_Angeles")) == 1


class TestDateStrings:
    def test_parse_valid(self):
        assert parse_date_string("2024-02-29") == date(2024, 2, 29)

    def test_parse_invalid(self):
        assert parse_date_string("2023-02-29") is None
        assert parse_date_string("yesterday") is None
        assert parse_date_string("2024-13-01") is None
        assert parse_date_string("2024/01/01") is None

    def test_unparseable_entries_dropped(self):
        strings = ["2024-03-15", "garbage", "2024-03-14", "2024-03-13", "2024-02-30"]
        assert current_streak_from_date_strings(strings, today=TODAY) == 3
        assert longest_streak_from_date_strings(strings) == 3

    def test_all_invalid_is_zero(self):
        assert current_streak_from_date_strings(["nope"], today=TODAY) == 0
        assert longest_streak_from_date_strings([]) == 0


class TestSummary:
    def test_summarize(self):
        timestamps = [_at(TODAY), _at(_days_ago(1)), _at(_days_ago(5)), _at(_days_ago(6)), _at(_days_ago(7))]

        summary = summarize_streaks(timestamps, today=TODAY)

        assert summary.current_streak == 2
        assert summary.longest_streak == 3
        assert summary.active_days == 5
        assert summary.last_active_date == TODAY

    def test_summarize_empty(self):
        summary = summarize_streaks([], today=TODAY)
        assert summary.current_streak == 0
        assert summary.longest_streak == 0
        assert summary.active_days == 0
        assert summary.last_active_date is None
