"""
Progress API Router

"Am I keeping it up?" endpoints: activity and journaling streaks, and the
user event log they are computed from.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.exceptions import ValidationError
from models import UserEvent
from schemas import (
    EventCountsResponse,
    StreakSummaryResponse,
    StreaksResponse,
    UserEventCreate,
    UserEventResponse,
)
from services.activity_streaks import (
    count_events_by_type,
    get_activity_streaks,
    get_journal_streaks,
    list_user_events,
    record_user_event,
)
from services.quote_schedule import ensure_utc, load_zone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


def _zone_or_422(name: Optional[str]):
    try:
        return load_zone(name or settings.DEFAULT_TIMEZONE)
    except (KeyError, ValueError):
        raise ValidationError(f"Unknown timezone: {name}", field="timezone")


def _event_response(event: UserEvent) -> UserEventResponse:
    return UserEventResponse(
        id=event.id,
        event_type=event.event_type,
        related_entity_id=event.related_entity_id,
        occurred_at=ensure_utc(event.occurred_at),
        details=event.details,
    )


@router.get("/streaks", response_model=StreaksResponse)
def get_streaks(
    timezone: Optional[str] = Query(None, description="IANA zone that defines day boundaries"),
    db: Session = Depends(get_db),
):
    """
    Current and longest streaks.

    A day is active when it has at least one delivered quote, new journal
    entry or completed exercise. The journal streak only counts journaling.
    """
    zone = _zone_or_422(timezone)
    activity = get_activity_streaks(db, zone=zone)
    journal = get_journal_streaks(db, zone=zone)
    return StreaksResponse(
        timezone=str(zone),
        activity=StreakSummaryResponse.model_validate(activity),
        journal=StreakSummaryResponse.model_validate(journal),
    )


@router.post("/events", response_model=UserEventResponse, status_code=status.HTTP_201_CREATED)
def create_event(payload: UserEventCreate, db: Session = Depends(get_db)):
    try:
        event = record_user_event(
            db,
            payload.event_type,
            occurred_at=payload.occurred_at,
            related_entity_id=payload.related_entity_id,
            details=payload.details,
        )
    except ValueError as e:
        raise ValidationError(str(e), field="event_type")
    return _event_response(event)


@router.get("/events", response_model=List[UserEventResponse])
def get_events(
    event_type: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return [_event_response(e) for e in list_user_events(db, event_type=event_type, limit=limit)]


@router.get("/events/counts", response_model=EventCountsResponse)
def get_event_counts(db: Session = Depends(get_db)):
    return EventCountsResponse(counts=count_events_by_type(db))
