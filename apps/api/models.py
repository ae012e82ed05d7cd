from sqlalchemy import Column, Integer, Boolean, CheckConstraint, DateTime, ForeignKey, Text, String, Index, JSON, true
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid


def _new_id() -> str:
    return str(uuid.uuid4())


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Quote(Base):
    """
    Quote content. Owned by the content subsystem; the delivery engine
    only reads it.
    """
    __tablename__ = "quote"

    id = Column(String(36), primary_key=True, default=_new_id)
    author = Column(Text, nullable=False)
    text = Column(Text, nullable=False)
    source = Column(Text, nullable=True)
    categories = Column(JSONType, nullable=True)  # list of category names
    is_favorite = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_quote_is_favorite", "is_favorite"),
    )


class QuoteSchedule(Base):
    """
    One configured delivery policy: when (local wall-clock time, active
    weekdays), how (notification / widget / both) and from which quotes.
    """
    __tablename__ = "quote_schedule"

    id = Column(String(36), primary_key=True, default=_new_id)
    is_enabled = Column(Boolean, default=True, nullable=False)
    scheduled_hour = Column(Integer, nullable=False)
    scheduled_minute = Column(Integer, nullable=False, default=0)
    delivery_method = Column(Text, nullable=False, default="both")  # 'notification' | 'widget' | 'both'
    favorites_only = Column(Boolean, default=False, nullable=False)
    categories = Column(JSONType, nullable=True)  # null / [] = every category
    exclude_recent_days = Column(Integer, nullable=False, default=7)
    active_days = Column(JSONType, nullable=True)  # ISO weekdays 1..7; null = every day

    # Last delivery pointer; the same-day check on last_delivery_date is the
    # duplicate-delivery guard.
    last_delivered_quote_id = Column(String(36), ForeignKey("quote.id", ondelete="SET NULL"), nullable=True)
    last_delivery_date = Column(DateTime(timezone=True), nullable=True)

    is_default = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("scheduled_hour >= 0 AND scheduled_hour <= 23", name="ck_quote_schedule_hour"),
        CheckConstraint("scheduled_minute >= 0 AND scheduled_minute <= 59", name="ck_quote_schedule_minute"),
        CheckConstraint("exclude_recent_days >= 0", name="ck_quote_schedule_exclude_days"),
        CheckConstraint(
            "delivery_method IN ('notification', 'widget', 'both')",
            name="ck_quote_schedule_delivery_method",
        ),
        Index("ix_quote_schedule_enabled", "is_enabled"),
        # Insert-if-absent backstop for the default schedule: at most one row
        # may carry is_default = true.
        Index(
            "uq_quote_schedule_default",
            "is_default",
            unique=True,
            postgresql_where=is_default.is_(true()),
            sqlite_where=is_default.is_(true()),
        ),
    )


class DeliveredQuote(Base):
    """
    Append-only delivery history used for exclusion-window lookups.

    Rows are pruned after the retention window; never updated.
    """
    __tablename__ = "delivered_quote"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(String(36), nullable=False)
    schedule_id = Column(String(36), ForeignKey("quote_schedule.id", ondelete="CASCADE"), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_delivered_quote_quote_id", "quote_id"),
        Index("ix_delivered_quote_delivered_at", "delivered_at"),
        Index("ix_delivered_quote_schedule_delivered", "schedule_id", "delivered_at"),
    )


class UserEvent(Base):
    """
    Timestamped user activity (journal entries, exercise sessions, quote
    deliveries, ...). Source of activity-day streaks.
    """
    __tablename__ = "user_event"

    id = Column(String(36), primary_key=True, default=_new_id)
    event_type = Column(Text, nullable=False)
    related_entity_id = Column(String(36), nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    details = Column(JSONType, nullable=True)

    __table_args__ = (
        Index("ix_user_event_event_type", "event_type"),
        Index("ix_user_event_occurred_at", "occurred_at"),
        Index("ix_user_event_related_entity_id", "related_entity_id"),
    )
