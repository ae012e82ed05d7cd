from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from typing import Optional, List, Dict, Any

from services.quote_schedule import DeliveryMethod, Schedule, CatalogQuote, DeliveryRecord


class ScheduleCreate(BaseModel):
    scheduled_hour: int
    scheduled_minute: int = 0
    is_enabled: bool = True
    delivery_method: DeliveryMethod = DeliveryMethod.BOTH
    favorites_only: bool = False
    categories: List[str] = []  # empty = every category
    exclude_recent_days: int = 7
    active_days: List[int] = []  # ISO weekdays 1=Mon..7=Sun; empty = every day
    is_default: bool = False

    def to_schedule(self, schedule_id: str = "") -> Schedule:
        return Schedule(
            id=schedule_id,
            scheduled_hour=self.scheduled_hour,
            scheduled_minute=self.scheduled_minute,
            is_enabled=self.is_enabled,
            delivery_method=self.delivery_method,
            favorites_only=self.favorites_only,
            categories=frozenset(self.categories),
            exclude_recent_days=self.exclude_recent_days,
            active_days=frozenset(self.active_days),
            is_default=self.is_default,
        )


class ScheduleUpdate(BaseModel):
    """Partial update; omitted fields keep their current value"""
    scheduled_hour: Optional[int] = None
    scheduled_minute: Optional[int] = None
    is_enabled: Optional[bool] = None
    delivery_method: Optional[DeliveryMethod] = None
    favorites_only: Optional[bool] = None
    categories: Optional[List[str]] = None
    exclude_recent_days: Optional[int] = None
    active_days: Optional[List[int]] = None
    is_default: Optional[bool] = None

    def apply_to(self, schedule: Schedule) -> Schedule:
        changes: Dict[str, Any] = self.model_dump(exclude_unset=True, exclude_none=True)
        if "categories" in changes:
            changes["categories"] = frozenset(changes["categories"])
        if "active_days" in changes:
            changes["active_days"] = frozenset(changes["active_days"])
        return schedule.with_changes(**changes)


class ScheduleEnabledUpdate(BaseModel):
    enabled: bool


class ScheduleTimeUpdate(BaseModel):
    hour: int
    minute: int = 0


class ScheduleMethodUpdate(BaseModel):
    delivery_method: DeliveryMethod


class ScheduleResponse(BaseModel):
    id: str
    scheduled_hour: int
    scheduled_minute: int
    formatted_time: str
    is_enabled: bool
    delivery_method: DeliveryMethod
    favorites_only: bool
    categories: List[str]
    category_filter_description: str
    exclude_recent_days: int
    active_days: List[int]
    active_days_description: str
    last_delivered_quote_id: Optional[str] = None
    last_delivery_date: Optional[datetime] = None
    is_default: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> "ScheduleResponse":
        return cls(
            id=schedule.id,
            scheduled_hour=schedule.scheduled_hour,
            scheduled_minute=schedule.scheduled_minute,
            formatted_time=schedule.formatted_time,
            is_enabled=schedule.is_enabled,
            delivery_method=schedule.delivery_method,
            favorites_only=schedule.favorites_only,
            categories=sorted(schedule.categories),
            category_filter_description=schedule.category_filter_description,
            exclude_recent_days=schedule.exclude_recent_days,
            active_days=sorted(schedule.active_days),
            active_days_description=schedule.active_days_description,
            last_delivered_quote_id=schedule.last_delivered_quote_id,
            last_delivery_date=schedule.last_delivery_date,
            is_default=schedule.is_default,
            created_at=schedule.created_at,
            updated_at=schedule.updated_at,
        )


class ScheduleSummaryResponse(BaseModel):
    total: int
    enabled: int
    has_enabled_schedules: bool
    most_recent_delivery_date: Optional[datetime] = None


class NextDeliveryResponse(BaseModel):
    schedule_id: str
    next_delivery_at: Optional[datetime] = None  # None when disabled
    timezone: str


class QuoteResponse(BaseModel):
    id: str
    author: str
    text: str
    categories: List[str]
    is_favorite: bool

    @classmethod
    def from_quote(cls, quote: CatalogQuote) -> "QuoteResponse":
        return cls(
            id=quote.id,
            author=quote.author,
            text=quote.text,
            categories=sorted(quote.categories),
            is_favorite=quote.is_favorite,
        )


class MarkDeliveredRequest(BaseModel):
    quote_id: str


class DeliveryRecordResponse(BaseModel):
    quote_id: str
    schedule_id: str
    delivered_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, record: DeliveryRecord) -> "DeliveryRecordResponse":
        return cls.model_validate(record)


class DeliveryOutcomeResponse(BaseModel):
    schedule_id: str
    outcome: str
    quote_id: Optional[str] = None
    message: Optional[str] = None
    surface_accepted: Optional[bool] = None


class DeliveryBatchResponse(BaseModel):
    run_at: datetime
    error: Optional[str] = None
    counts: Dict[str, int]
    outcomes: List[DeliveryOutcomeResponse]


class WidgetQuoteResponse(BaseModel):
    state: str  # current | stale | missing
    quote_id: Optional[str] = None
    author: Optional[str] = None
    text: Optional[str] = None
    delivered_at: Optional[datetime] = None


class UserEventCreate(BaseModel):
    event_type: str
    related_entity_id: Optional[str] = None
    occurred_at: Optional[datetime] = None  # defaults to now
    details: Optional[Dict[str, Any]] = None


class UserEventResponse(BaseModel):
    id: str
    event_type: str
    related_entity_id: Optional[str] = None
    occurred_at: datetime
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class StreakSummaryResponse(BaseModel):
    current_streak: int
    longest_streak: int
    active_days: int
    last_active_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class StreaksResponse(BaseModel):
    timezone: str
    activity: StreakSummaryResponse
    journal: StreakSummaryResponse


class EventCountsResponse(BaseModel):
    counts: Dict[str, int] = Field(default_factory=dict)
