"""
Schedule Row Store

Plain SQLAlchemy persistence for schedules, delivery history, user events
and read-only quote access. Every public method runs in its own
transaction; the `*_in` methods take an open Session so the history
tracker can chain several steps in one transaction.

This layer raises SQLAlchemyError; the schedule service turns those into
Result failures at its boundary.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple
import logging
import uuid

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from core.database import SessionLocal, session_scope
from models import DeliveredQuote, Quote, QuoteSchedule, UserEvent
from services.quote_schedule import (
    CatalogQuote,
    DeliveryMethod,
    DeliveryRecord,
    Schedule,
    ensure_utc,
    quote_from_row,
    record_from_row,
    schedule_from_row,
    schedule_to_columns,
)

logger = logging.getLogger(__name__)


class ScheduleStore:
    """SQLAlchemy-backed store of truth for the delivery engine."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        with session_scope(self.session_factory) as db:
            yield db

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def list_schedules(
        self,
        enabled_only: bool = False,
        method: Optional[DeliveryMethod] = None,
    ) -> List[Schedule]:
        """
        Schedules ordered by time of day.

        `method` keeps schedules whose delivery includes that surface
        (BOTH matches either).
        """
        with self.transaction() as db:
            query = db.query(QuoteSchedule)
            if enabled_only:
                query = query.filter(QuoteSchedule.is_enabled.is_(True))
            if method is not None:
                query = query.filter(QuoteSchedule.delivery_method.in_(
                    [DeliveryMethod(method).value, DeliveryMethod.BOTH.value]
                ))
            rows = query.order_by(
                QuoteSchedule.scheduled_hour,
                QuoteSchedule.scheduled_minute,
                QuoteSchedule.created_at,
            ).all()
            return [schedule_from_row(row) for row in rows]

    def get_schedule(self, schedule_id: str) -> Optional[Schedule]:
        with self.transaction() as db:
            row = db.get(QuoteSchedule, schedule_id)
            return schedule_from_row(row) if row else None

    def get_default_schedule(self) -> Optional[Schedule]:
        with self.transaction() as db:
            row = db.query(QuoteSchedule).filter(QuoteSchedule.is_default.is_(True)).first()
            return schedule_from_row(row) if row else None

    def insert_schedule(self, schedule: Schedule) -> Schedule:
        with self.transaction() as db:
            row = QuoteSchedule(id=schedule.id or str(uuid.uuid4()), **schedule_to_columns(schedule))
            db.add(row)
            db.flush()
            db.refresh(row)
            return schedule_from_row(row)

    def insert_default_if_absent(self, schedule: Schedule) -> Tuple[Schedule, bool]:
        """
        Return (default schedule, created).

        A concurrent insert that loses the race on the partial unique index
        re-reads the winner instead of failing.
        """
        existing = self.get_default_schedule()
        if existing is not None:
            return existing, False
        try:
            return self.insert_schedule(schedule.with_changes(is_default=True)), True
        except IntegrityError:
            logger.info("Default schedule created concurrently; re-reading")
            winner = self.get_default_schedule()
            if winner is None:
                raise
            return winner, False

    def update_schedule(self, schedule: Schedule) -> Optional[Schedule]:
        """Overwrite the settings of an existing schedule; None if it doesn't exist."""
        with self.transaction() as db:
            row = db.get(QuoteSchedule, schedule.id)
            if row is None:
                return None
            for column, value in schedule_to_columns(schedule, include_delivery_pointer=False).items():
                setattr(row, column, value)
            db.flush()
            db.refresh(row)
            return schedule_from_row(row)

    def update_fields(self, schedule_id: str, **columns) -> bool:
        """Targeted column update; True if a row matched."""
        with self.transaction() as db:
            matched = db.query(QuoteSchedule).filter(
                QuoteSchedule.id == schedule_id,
            ).update(
                {**columns, "updated_at": func.now()},
                synchronize_session=False,
            )
            return matched > 0

    def delete_schedule(self, schedule_id: str) -> bool:
        with self.transaction() as db:
            db.query(DeliveredQuote).filter(
                DeliveredQuote.schedule_id == schedule_id,
            ).delete(synchronize_session=False)
            deleted = db.query(QuoteSchedule).filter(
                QuoteSchedule.id == schedule_id,
            ).delete(synchronize_session=False)
            return deleted > 0

    def delete_all_schedules(self) -> int:
        with self.transaction() as db:
            db.query(DeliveredQuote).delete(synchronize_session=False)
            return db.query(QuoteSchedule).delete(synchronize_session=False)

    def count_schedules(self, enabled_only: bool = False) -> int:
        with self.transaction() as db:
            query = db.query(func.count(QuoteSchedule.id))
            if enabled_only:
                query = query.filter(QuoteSchedule.is_enabled.is_(True))
            return query.scalar() or 0

    def most_recent_delivery_date(self) -> Optional[datetime]:
        with self.transaction() as db:
            return ensure_utc(db.query(func.max(QuoteSchedule.last_delivery_date)).scalar())

    # ------------------------------------------------------------------
    # Quotes (read-only)
    # ------------------------------------------------------------------

    def list_quotes(self, favorites_only: bool = False) -> List[CatalogQuote]:
        with self.transaction() as db:
            query = db.query(Quote)
            if favorites_only:
                query = query.filter(Quote.is_favorite.is_(True))
            return [quote_from_row(row) for row in query.order_by(Quote.id).all()]

    def get_quote(self, quote_id: str) -> Optional[CatalogQuote]:
        with self.transaction() as db:
            row = db.get(Quote, quote_id)
            return quote_from_row(row) if row else None

    # ------------------------------------------------------------------
    # Delivery history
    # ------------------------------------------------------------------

    def deliveries_since(self, schedule_id: str, cutoff: datetime) -> List[DeliveryRecord]:
        """This schedule's deliveries with delivered_at >= cutoff."""
        with self.transaction() as db:
            rows = db.query(DeliveredQuote).filter(
                DeliveredQuote.schedule_id == schedule_id,
                DeliveredQuote.delivered_at >= ensure_utc(cutoff),
            ).order_by(DeliveredQuote.delivered_at).all()
            return [record_from_row(row) for row in rows]

    def list_deliveries(self, schedule_id: Optional[str] = None) -> List[DeliveryRecord]:
        with self.transaction() as db:
            query = db.query(DeliveredQuote)
            if schedule_id is not None:
                query = query.filter(DeliveredQuote.schedule_id == schedule_id)
            return [record_from_row(row) for row in query.order_by(DeliveredQuote.delivered_at).all()]

    def insert_delivery_in(self, db: Session, record: DeliveryRecord) -> None:
        db.add(DeliveredQuote(
            quote_id=record.quote_id,
            schedule_id=record.schedule_id,
            delivered_at=ensure_utc(record.delivered_at),
        ))
        db.flush()

    def prune_deliveries_in(self, db: Session, older_than: datetime) -> int:
        """Bulk delete history rows with delivered_at < older_than."""
        return db.query(DeliveredQuote).filter(
            DeliveredQuote.delivered_at < ensure_utc(older_than),
        ).delete(synchronize_session=False)

    def claim_last_delivery_in(
        self,
        db: Session,
        schedule_id: str,
        quote_id: str,
        delivered_at: datetime,
        day_start: datetime,
    ) -> bool:
        """
        Compare-and-swap the last-delivery pointer.

        Only moves the pointer when the schedule has not delivered since
        `day_start` (start of the local day). Two runs racing on the same
        schedule cannot both succeed.
        """
        matched = db.query(QuoteSchedule).filter(
            QuoteSchedule.id == schedule_id,
            or_(
                QuoteSchedule.last_delivery_date.is_(None),
                QuoteSchedule.last_delivery_date < ensure_utc(day_start),
            ),
        ).update(
            {
                "last_delivered_quote_id": quote_id,
                "last_delivery_date": ensure_utc(delivered_at),
                "updated_at": func.now(),
            },
            synchronize_session=False,
        )
        return matched == 1

    def invalidate_schedule(self, schedule_id: str) -> None:
        """The row store holds no cached copies."""

    def schedule_exists_in(self, db: Session, schedule_id: str) -> bool:
        return db.query(QuoteSchedule.id).filter(QuoteSchedule.id == schedule_id).first() is not None

    def quote_exists_in(self, db: Session, quote_id: str) -> bool:
        return db.query(Quote.id).filter(Quote.id == quote_id).first() is not None

    # ------------------------------------------------------------------
    # User events
    # ------------------------------------------------------------------

    def add_user_event_in(
        self,
        db: Session,
        event_type: str,
        occurred_at: datetime,
        related_entity_id: Optional[str] = None,
        details: Optional[Dict] = None,
    ) -> None:
        db.add(UserEvent(
            event_type=event_type,
            related_entity_id=related_entity_id,
            occurred_at=ensure_utc(occurred_at),
            details=details,
        ))
