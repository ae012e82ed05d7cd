"""
Delivery Readiness Evaluator

Pure functions answering "which schedules are due right now?".

A schedule is ready when:
    - it is enabled
    - today (local) is one of its active weekdays
    - local wall-clock time has reached today's scheduled hour:minute
    - it has not already delivered on today's local calendar day

The trigger runs hourly, so "at or after the scheduled time" (rather than
an exact-minute match) is what lets a late or missed run still fire. The
same-day check is the idempotence guard against overlapping runs; the
history tracker re-checks it atomically when claiming the delivery.

Nothing here reads a clock or a store: `now` and the schedules are inputs.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, List, Optional, Tuple

from services.quote_schedule import Schedule, ensure_utc, resolve_zone

# Look-ahead for next_delivery_time; one full week covers every weekday mask.
NEXT_DELIVERY_SEARCH_DAYS = 7


def local_now(now: datetime, zone: Optional[tzinfo] = None) -> datetime:
    return ensure_utc(now).astimezone(resolve_zone(zone))


def scheduled_instant(schedule: Schedule, day: date, zone: Optional[tzinfo] = None) -> datetime:
    """The schedule's slot on `day`, as an aware datetime in `zone`."""
    return datetime.combine(day, time(schedule.scheduled_hour, schedule.scheduled_minute),
                            tzinfo=resolve_zone(zone))


def local_day_bounds(now: datetime, zone: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    """[start, end) of `now`'s local calendar day, in UTC."""
    zone = resolve_zone(zone)
    today = local_now(now, zone).date()
    start = datetime.combine(today, time.min, tzinfo=zone)
    end = datetime.combine(today + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def delivered_on_local_day(schedule: Schedule, now: datetime, zone: Optional[tzinfo] = None) -> bool:
    if schedule.last_delivery_date is None:
        return False
    zone = resolve_zone(zone)
    return local_now(schedule.last_delivery_date, zone).date() == local_now(now, zone).date()


def is_ready(schedule: Schedule, now: datetime, zone: Optional[tzinfo] = None) -> bool:
    if not schedule.is_enabled:
        return False

    current = local_now(now, zone)
    if not schedule.is_active_on_day(current.isoweekday()):
        return False

    if current < scheduled_instant(schedule, current.date(), zone):
        return False

    if delivered_on_local_day(schedule, now, zone):
        return False

    return True


def ready_schedules(
    schedules: Iterable[Schedule],
    now: datetime,
    zone: Optional[tzinfo] = None,
) -> List[str]:
    """Ids of the schedules due at `now`, in input order."""
    return [schedule.id for schedule in schedules if is_ready(schedule, now, zone)]


def next_delivery_time(
    schedule: Schedule,
    now: datetime,
    zone: Optional[tzinfo] = None,
) -> Optional[datetime]:
    """
    Next scheduled slot strictly after `now` on an active day.

    Returns None for a disabled schedule. Today's slot counts only if it is
    still ahead and today has not already been delivered.
    """
    if not schedule.is_enabled:
        return None

    current = local_now(now, zone)
    today_slot = scheduled_instant(schedule, current.date(), zone)
    if (
        today_slot > current
        and schedule.is_active_on_day(current.isoweekday())
        and not delivered_on_local_day(schedule, now, zone)
    ):
        return today_slot

    for offset in range(1, NEXT_DELIVERY_SEARCH_DAYS + 1):
        day = current.date() + timedelta(days=offset)
        if schedule.is_active_on_day(day.isoweekday()):
            return scheduled_instant(schedule, day, zone)
    return None
