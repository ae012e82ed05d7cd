"""
Activity Streaks

Persisted user events and the streaks derived from them.

Every countable user action (a delivered quote, a journal entry, a
completed exercise) is stored as a `user_event` row. Streaks are computed
on read by the streak calculator, in the caller's zone, so a user who
travels sees day boundaries in their current zone.
"""

from datetime import date, datetime, timezone, tzinfo
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import UserEvent
from services.quote_schedule import ensure_utc
from services.streak_calculator import StreakSummary, summarize_streaks

logger = logging.getLogger(__name__)

# Quote events
QUOTE_VIEWED = "quote_viewed"
QUOTE_FAVORITED = "quote_favorited"
QUOTE_UNFAVORITED = "quote_unfavorited"
QUOTE_SHARED = "quote_shared"
QUOTE_DELIVERED = "quote_delivered"

# Journal events
JOURNAL_CREATED = "journal_created"
JOURNAL_UPDATED = "journal_updated"
JOURNAL_VIEWED = "journal_viewed"

# Exercise events
EXERCISE_STARTED = "exercise_started"
EXERCISE_COMPLETED = "exercise_completed"
EXERCISE_CANCELLED = "exercise_cancelled"

# Achievement events
ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
STREAK_MILESTONE = "streak_milestone"

USER_EVENT_TYPES = frozenset({
    QUOTE_VIEWED, QUOTE_FAVORITED, QUOTE_UNFAVORITED, QUOTE_SHARED, QUOTE_DELIVERED,
    JOURNAL_CREATED, JOURNAL_UPDATED, JOURNAL_VIEWED,
    EXERCISE_STARTED, EXERCISE_COMPLETED, EXERCISE_CANCELLED,
    ACHIEVEMENT_UNLOCKED, STREAK_MILESTONE,
})

# Events that make a day count as "active".
STREAK_EVENT_TYPES = (QUOTE_DELIVERED, JOURNAL_CREATED, EXERCISE_COMPLETED)


def record_user_event(
    db: Session,
    event_type: str,
    occurred_at: Optional[datetime] = None,
    related_entity_id: Optional[str] = None,
    details: Optional[Dict] = None,
) -> UserEvent:
    """
    Add a user event to the session (caller commits).

    Raises ValueError for an unknown event type.
    """
    if event_type not in USER_EVENT_TYPES:
        raise ValueError(f"Unknown event type: {event_type}")

    event = UserEvent(
        event_type=event_type,
        related_entity_id=related_entity_id,
        occurred_at=ensure_utc(occurred_at) or datetime.now(timezone.utc),
        details=details,
    )
    db.add(event)
    db.flush()
    logger.debug(f"Recorded {event_type} event {event.id}")
    return event


def list_user_events(
    db: Session,
    event_type: Optional[str] = None,
    limit: int = 50,
) -> List[UserEvent]:
    """Most recent events first."""
    query = db.query(UserEvent)
    if event_type:
        query = query.filter(UserEvent.event_type == event_type)
    return query.order_by(UserEvent.occurred_at.desc()).limit(limit).all()


def activity_timestamps(
    db: Session,
    event_types: Iterable[str] = STREAK_EVENT_TYPES,
    since: Optional[datetime] = None,
) -> List[datetime]:
    query = db.query(UserEvent.occurred_at).filter(UserEvent.event_type.in_(list(event_types)))
    if since is not None:
        query = query.filter(UserEvent.occurred_at >= ensure_utc(since))
    return [ensure_utc(occurred_at) for (occurred_at,) in query.all()]


def count_events_by_type(db: Session) -> Dict[str, int]:
    rows = db.query(UserEvent.event_type, func.count(UserEvent.id)).group_by(UserEvent.event_type).all()
    return {event_type: count for event_type, count in rows}


def get_activity_streaks(
    db: Session,
    zone: Optional[tzinfo] = None,
    event_types: Optional[Iterable[str]] = None,
    today: Optional[date] = None,
) -> StreakSummary:
    """Streaks over days with at least one countable event."""
    timestamps = activity_timestamps(db, event_types or STREAK_EVENT_TYPES)
    return summarize_streaks(timestamps, zone=zone, today=today)


def get_journal_streaks(
    db: Session,
    zone: Optional[tzinfo] = None,
    today: Optional[date] = None,
) -> StreakSummary:
    """Journaling streak: days with at least one new entry."""
    return get_activity_streaks(db, zone=zone, event_types=(JOURNAL_CREATED,), today=today)
