"""
Streak Calculator

Pure functions turning activity timestamps into consecutive-day streaks.

A streak is the number of consecutive calendar days (in a given zone) with
at least one qualifying activity. The current streak survives until the day
after the last activity has fully elapsed: activity yesterday keeps it alive,
a gap of two or more days breaks it.

All arithmetic is on calendar dates (date ordinals), so month/year
boundaries, leap days and DST transitions need no special handling.

Timestamps may be aware datetimes (naive ones are taken as UTC) or epoch
milliseconds.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable, List, Optional, Union
import logging

logger = logging.getLogger(__name__)

Timestamp = Union[datetime, int, float]


@dataclass(frozen=True)
class StreakSummary:
    current_streak: int
    longest_streak: int
    active_days: int
    last_active_date: Optional[date]


def to_local_date(timestamp: Timestamp, zone: Optional[tzinfo] = None) -> date:
    """Calendar date of a timestamp in `zone` (UTC when omitted)."""
    zone = zone or timezone.utc
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(zone).date()
    return datetime.fromtimestamp(timestamp / 1000, tz=zone).date()


def parse_date_string(value: str) -> Optional[date]:
    """
    Parse YYYY-MM-DD. Returns None for anything unparseable
    (wrong shape, non-numeric parts, impossible dates like 2023-02-29).
    """
    if not isinstance(value, str):
        return None
    parts = value.strip().split("-")
    if len(parts) != 3:
        return None
    try:
        year, month, day = (int(part) for part in parts)
        return date(year, month, day)
    except ValueError:
        return None


def _distinct_dates(timestamps: Iterable[Timestamp], zone: Optional[tzinfo]) -> List[date]:
    return sorted({to_local_date(ts, zone) for ts in timestamps})


def _parsed_dates(date_strings: Iterable[str]) -> List[date]:
    dates = set()
    for value in date_strings:
        parsed = parse_date_string(value)
        if parsed is None:
            logger.debug(f"Dropping unparseable activity date: {value!r}")
            continue
        dates.add(parsed)
    return sorted(dates)


def _today(zone: Optional[tzinfo]) -> date:
    return datetime.now(zone or timezone.utc).date()


def current_streak_from_dates(dates: Iterable[date], today: date) -> int:
    """Current streak over calendar dates; duplicates and order don't matter."""
    ordered = sorted(set(dates), reverse=True)
    if not ordered:
        return 0

    most_recent = ordered[0]
    if today.toordinal() - most_recent.toordinal() > 1:
        return 0

    streak = 1
    for previous, current in zip(ordered, ordered[1:]):
        if previous.toordinal() - current.toordinal() != 1:
            break
        streak += 1
    return streak


def longest_streak_from_dates(dates: Iterable[date]) -> int:
    """Longest run of consecutive calendar dates."""
    ordered = sorted(set(dates))
    if not ordered:
        return 0

    longest = 1
    running = 1
    for previous, current in zip(ordered, ordered[1:]):
        if current.toordinal() - previous.toordinal() == 1:
            running += 1
            longest = max(longest, running)
        else:
            running = 1
    return longest


def current_streak(
    timestamps: Iterable[Timestamp],
    zone: Optional[tzinfo] = None,
    today: Optional[date] = None,
) -> int:
    """Current streak ending today or yesterday in `zone`."""
    dates = _distinct_dates(timestamps, zone)
    return current_streak_from_dates(dates, today or _today(zone))


def longest_streak(timestamps: Iterable[Timestamp], zone: Optional[tzinfo] = None) -> int:
    """Longest streak ever observed in `zone`."""
    return longest_streak_from_dates(_distinct_dates(timestamps, zone))


def current_streak_from_date_strings(
    date_strings: Iterable[str],
    zone: Optional[tzinfo] = None,
    today: Optional[date] = None,
) -> int:
    """Current streak from YYYY-MM-DD strings; `zone` only anchors "today"."""
    return current_streak_from_dates(_parsed_dates(date_strings), today or _today(zone))


def longest_streak_from_date_strings(date_strings: Iterable[str]) -> int:
    return longest_streak_from_dates(_parsed_dates(date_strings))


def unique_days_count(timestamps: Iterable[Timestamp], zone: Optional[tzinfo] = None) -> int:
    return len(_distinct_dates(timestamps, zone))


def summarize_streaks(
    timestamps: Iterable[Timestamp],
    zone: Optional[tzinfo] = None,
    today: Optional[date] = None,
) -> StreakSummary:
    """Current + longest streak, active-day count and last active date in one pass."""
    dates = _distinct_dates(timestamps, zone)
    return StreakSummary(
        current_streak=current_streak_from_dates(dates, today or _today(zone)),
        longest_streak=longest_streak_from_dates(dates),
        active_days=len(dates),
        last_active_date=dates[-1] if dates else None,
    )
