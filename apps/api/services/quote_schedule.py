"""
Quote Schedule Domain Types

Immutable value objects passed between the scheduling components:

- Schedule: one delivery policy (time of day, active weekdays, method, filters)
- DeliveryRecord: one fulfilled delivery
- CatalogQuote: the read-only slice of a quote the engine cares about
- QuoteDelivery: what the delivery surface receives

Frozen dataclasses keep the readiness evaluator and selector pure and make
cached values safe to share between threads. Row mapping lives here so the
store and its callers agree on one conversion.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, time, timezone, tzinfo
from enum import Enum
from typing import FrozenSet, Iterable, Optional
import zoneinfo

DEFAULT_SCHEDULE_HOUR = 9
DEFAULT_SCHEDULE_MINUTE = 0
DEFAULT_EXCLUDE_RECENT_DAYS = 7

WEEKDAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


class DeliveryMethod(str, Enum):
    NOTIFICATION = "notification"
    WIDGET = "widget"
    BOTH = "both"

    @property
    def uses_notification(self) -> bool:
        return self in (DeliveryMethod.NOTIFICATION, DeliveryMethod.BOTH)

    @property
    def uses_widget(self) -> bool:
        return self in (DeliveryMethod.WIDGET, DeliveryMethod.BOTH)

    @property
    def display_name(self) -> str:
        return {
            DeliveryMethod.NOTIFICATION: "Notification",
            DeliveryMethod.WIDGET: "Widget",
            DeliveryMethod.BOTH: "Notification & Widget",
        }[self]


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a timestamp to aware UTC.

    Naive values (SQLite drops the offset on read) are taken to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Schedule:
    id: str
    scheduled_hour: int = DEFAULT_SCHEDULE_HOUR
    scheduled_minute: int = DEFAULT_SCHEDULE_MINUTE
    is_enabled: bool = True
    delivery_method: DeliveryMethod = DeliveryMethod.BOTH
    favorites_only: bool = False
    categories: FrozenSet[str] = field(default_factory=frozenset)
    exclude_recent_days: int = DEFAULT_EXCLUDE_RECENT_DAYS
    active_days: FrozenSet[int] = field(default_factory=frozenset)  # empty = every day
    last_delivered_quote_id: Optional[str] = None
    last_delivery_date: Optional[datetime] = None
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def scheduled_time(self) -> time:
        return time(self.scheduled_hour, self.scheduled_minute)

    @property
    def formatted_time(self) -> str:
        return f"{self.scheduled_hour:02d}:{self.scheduled_minute:02d}"

    def is_active_on_day(self, iso_weekday: int) -> bool:
        """iso_weekday: 1=Monday .. 7=Sunday."""
        return not self.active_days or iso_weekday in self.active_days

    @property
    def active_days_description(self) -> str:
        if not self.active_days or len(self.active_days) == 7:
            return "Every day"
        return ", ".join(WEEKDAY_NAMES[day - 1] for day in sorted(self.active_days))

    @property
    def category_filter_description(self) -> str:
        if not self.categories:
            return "All categories"
        if len(self.categories) == 1:
            return next(iter(self.categories))
        return f"{len(self.categories)} categories"

    def with_changes(self, **changes) -> "Schedule":
        return replace(self, **changes)

    @classmethod
    def create_default(cls, schedule_id: str, hour: int = DEFAULT_SCHEDULE_HOUR,
                       minute: int = DEFAULT_SCHEDULE_MINUTE,
                       exclude_recent_days: int = DEFAULT_EXCLUDE_RECENT_DAYS) -> "Schedule":
        """Safe defaults: enabled, daily at 09:00, both surfaces, no filters."""
        return cls(
            id=schedule_id,
            scheduled_hour=hour,
            scheduled_minute=minute,
            is_enabled=True,
            delivery_method=DeliveryMethod.BOTH,
            exclude_recent_days=exclude_recent_days,
            is_default=True,
        )


@dataclass(frozen=True)
class DeliveryRecord:
    quote_id: str
    schedule_id: str
    delivered_at: datetime


@dataclass(frozen=True)
class CatalogQuote:
    id: str
    categories: FrozenSet[str] = field(default_factory=frozenset)
    is_favorite: bool = False
    author: str = ""
    text: str = ""


@dataclass(frozen=True)
class QuoteDelivery:
    quote_id: str
    schedule_id: str
    delivery_method: DeliveryMethod
    author: str = ""
    text: str = ""


def validate_schedule(schedule: Schedule) -> Optional[str]:
    """Return a human-readable problem with the schedule, or None if valid."""
    if not 0 <= schedule.scheduled_hour <= 23:
        return f"scheduled_hour must be between 0 and 23, got {schedule.scheduled_hour}"
    if not 0 <= schedule.scheduled_minute <= 59:
        return f"scheduled_minute must be between 0 and 59, got {schedule.scheduled_minute}"
    if schedule.exclude_recent_days < 0:
        return f"exclude_recent_days must be >= 0, got {schedule.exclude_recent_days}"
    bad_days = [day for day in schedule.active_days if not 1 <= day <= 7]
    if bad_days:
        return f"active_days must be ISO weekdays 1-7, got {sorted(bad_days)}"
    return None


def _frozen(values: Optional[Iterable]) -> frozenset:
    return frozenset(values or ())


def schedule_from_row(row) -> Schedule:
    """Map a models.QuoteSchedule row to a Schedule."""
    return Schedule(
        id=row.id,
        scheduled_hour=row.scheduled_hour,
        scheduled_minute=row.scheduled_minute,
        is_enabled=bool(row.is_enabled),
        delivery_method=DeliveryMethod(row.delivery_method),
        favorites_only=bool(row.favorites_only),
        categories=_frozen(row.categories),
        exclude_recent_days=row.exclude_recent_days,
        active_days=_frozen(row.active_days),
        last_delivered_quote_id=row.last_delivered_quote_id,
        last_delivery_date=ensure_utc(row.last_delivery_date),
        is_default=bool(row.is_default),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def schedule_to_columns(schedule: Schedule, include_delivery_pointer: bool = True) -> dict:
    """
    Column values for inserting/updating a models.QuoteSchedule row.

    Updates leave the delivery pointer out; only the history tracker moves it.
    """
    columns = {
        "scheduled_hour": schedule.scheduled_hour,
        "scheduled_minute": schedule.scheduled_minute,
        "is_enabled": schedule.is_enabled,
        "delivery_method": DeliveryMethod(schedule.delivery_method).value,
        "favorites_only": schedule.favorites_only,
        "categories": sorted(schedule.categories) or None,
        "exclude_recent_days": schedule.exclude_recent_days,
        "active_days": sorted(schedule.active_days) or None,
        "is_default": schedule.is_default,
    }
    if include_delivery_pointer:
        columns["last_delivered_quote_id"] = schedule.last_delivered_quote_id
        columns["last_delivery_date"] = ensure_utc(schedule.last_delivery_date)
    return columns


def quote_from_row(row) -> CatalogQuote:
    """Map a models.Quote row to a CatalogQuote."""
    return CatalogQuote(
        id=row.id,
        categories=_frozen(row.categories),
        is_favorite=bool(row.is_favorite),
        author=row.author or "",
        text=row.text or "",
    )


def record_from_row(row) -> DeliveryRecord:
    """Map a models.DeliveredQuote row to a DeliveryRecord."""
    return DeliveryRecord(
        quote_id=row.quote_id,
        schedule_id=row.schedule_id,
        delivered_at=ensure_utc(row.delivered_at),
    )


def resolve_zone(zone: Optional[tzinfo]) -> tzinfo:
    return zone if zone is not None else timezone.utc


def load_zone(name: Optional[str]) -> tzinfo:
    """
    IANA zone by name; UTC when name is empty.

    Raises KeyError (ZoneInfoNotFoundError) or ValueError for unknown or
    malformed names.
    """
    if not name or name.upper() == "UTC":
        return timezone.utc
    return zoneinfo.ZoneInfo(name)
