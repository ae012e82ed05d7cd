"""
Schedule Service

Single entry point for everything the API and the periodic task do with
quote schedules: CRUD, queries, the default schedule, and the delivery
batch.

Every operation returns a core.result.Result; storage errors are caught
here, logged and reported as PERSISTENCE_FAILURE. The batch never aborts
on one schedule's failure; it reports one outcome per ready schedule.

Delivery batch:
    readiness (what is due) -> selector (which quote) -> history tracker
    (record + claim) -> delivery surface (notify / widget)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging
import random
import uuid

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.config import settings
from core.memory_cache import MemoryCache
from core.result import ErrorKind, Result
from services.cached_schedule_store import CachedScheduleStore
from services.delivery_history import DeliveryHistoryTracker
from services.delivery_readiness import is_ready, next_delivery_time
from services.delivery_surface import DefaultDeliverySurface, DeliverySurface, deliver_safely
from services.quote_schedule import (
    CatalogQuote,
    DeliveryMethod,
    DeliveryRecord,
    QuoteDelivery,
    Schedule,
    ensure_utc,
    load_zone,
    validate_schedule,
)
from services.quote_selector import exclusion_cutoff, select_next
from services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    NO_ELIGIBLE_QUOTE = "no_eligible_quote"
    ALREADY_DELIVERED = "already_delivered"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class ScheduleDeliveryOutcome:
    schedule_id: str
    outcome: DeliveryOutcome
    quote_id: Optional[str] = None
    message: Optional[str] = None
    surface_accepted: Optional[bool] = None

    def to_dict(self) -> Dict:
        return {
            "schedule_id": self.schedule_id,
            "outcome": self.outcome.value,
            "quote_id": self.quote_id,
            "message": self.message,
            "surface_accepted": self.surface_accepted,
        }


@dataclass
class DeliveryBatchReport:
    """Result of one deliver_due_quotes() run."""
    run_at: datetime
    outcomes: List[ScheduleDeliveryOutcome] = field(default_factory=list)
    error: Optional[str] = None  # set when the batch could not load its inputs

    @property
    def delivered(self) -> List[ScheduleDeliveryOutcome]:
        return [o for o in self.outcomes if o.outcome == DeliveryOutcome.DELIVERED]

    def counts(self) -> Dict[str, int]:
        counts = {outcome.value: 0 for outcome in DeliveryOutcome}
        for o in self.outcomes:
            counts[o.outcome.value] += 1
        return counts

    def to_dict(self) -> Dict:
        return {
            "run_at": self.run_at.isoformat(),
            "error": self.error,
            "counts": self.counts(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


_OUTCOME_FOR_KIND = {
    ErrorKind.ALREADY_DELIVERED: DeliveryOutcome.ALREADY_DELIVERED,
    ErrorKind.NOT_FOUND: DeliveryOutcome.NOT_FOUND,
}


class ScheduleService:
    def __init__(
        self,
        store: Optional[ScheduleStore] = None,
        cache: Optional[MemoryCache] = None,
        surface: Optional[DeliverySurface] = None,
        zone: Optional[tzinfo] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        retention_days: Optional[int] = None,
    ):
        self.truth = store or ScheduleStore()
        self.store = CachedScheduleStore(self.truth, cache)
        self.surface = surface or DefaultDeliverySurface()
        self.zone = zone or load_zone(settings.DEFAULT_TIMEZONE)
        self.rng = rng
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.tracker = DeliveryHistoryTracker(
            self.store,
            retention_days=retention_days or settings.DELIVERY_RETENTION_DAYS,
            zone=self.zone,
        )

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) or ensure_utc(self.clock())

    def _guard(self, action: str, operation: Callable[[], Result]) -> Result:
        """Run a store operation, turning storage errors into a failed Result."""
        try:
            return operation()
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            return Result.failure(f"Failed to {action}: {e}", kind=ErrorKind.PERSISTENCE_FAILURE, cause=e)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_schedule(self, schedule: Schedule) -> Result[Schedule]:
        problem = validate_schedule(schedule)
        if problem:
            return Result.failure(problem, kind=ErrorKind.VALIDATION)

        def create():
            if schedule.is_default and self.truth.get_default_schedule() is not None:
                return Result.failure("A default schedule already exists", kind=ErrorKind.CONFLICT)
            try:
                created = self.store.insert_schedule(schedule.with_changes(id=schedule.id or str(uuid.uuid4())))
            except IntegrityError as e:
                if schedule.is_default:
                    return Result.failure("A default schedule already exists", kind=ErrorKind.CONFLICT, cause=e)
                return Result.failure(f"Schedule already exists: {schedule.id}", kind=ErrorKind.CONFLICT, cause=e)
            logger.info(f"Created schedule {created.id} at {created.formatted_time} ({created.delivery_method.value})")
            return Result.success(created)

        return self._guard("create schedule", create)

    def update_schedule(self, schedule: Schedule) -> Result[Schedule]:
        problem = validate_schedule(schedule)
        if problem:
            return Result.failure(problem, kind=ErrorKind.VALIDATION)

        def update():
            if schedule.is_default:
                current_default = self.truth.get_default_schedule()
                if current_default is not None and current_default.id != schedule.id:
                    return Result.failure("A default schedule already exists", kind=ErrorKind.CONFLICT)
            updated = self.store.update_schedule(schedule)
            if updated is None:
                return Result.failure(f"Schedule not found: {schedule.id}", kind=ErrorKind.NOT_FOUND)
            logger.info(f"Updated schedule {updated.id}")
            return Result.success(updated)

        return self._guard("update schedule", update)

    def delete_schedule(self, schedule_id: str) -> Result[None]:
        def delete():
            if not self.store.delete_schedule(schedule_id):
                return Result.failure(f"Schedule not found: {schedule_id}", kind=ErrorKind.NOT_FOUND)
            logger.info(f"Deleted schedule {schedule_id}")
            return Result.success()

        return self._guard("delete schedule", delete)

    def delete_all_schedules(self) -> Result[int]:
        def delete_all():
            deleted = self.store.delete_all_schedules()
            logger.info(f"Deleted all schedules ({deleted})")
            return Result.success(deleted)

        return self._guard("delete all schedules", delete_all)

    def get_schedule(self, schedule_id: str) -> Result[Optional[Schedule]]:
        return self._guard("get schedule", lambda: Result.success(self.store.get_schedule(schedule_id)))

    def get_default_schedule(self) -> Result[Optional[Schedule]]:
        return self._guard("get default schedule", lambda: Result.success(self.store.get_default_schedule()))

    def get_all_schedules(self) -> Result[List[Schedule]]:
        return self._guard("list schedules", lambda: Result.success(self.store.list_schedules()))

    def get_enabled_schedules(self) -> Result[List[Schedule]]:
        return self._guard(
            "list enabled schedules",
            lambda: Result.success(self.store.list_schedules(enabled_only=True)),
        )

    def ensure_default_schedule(self) -> Result[Schedule]:
        """Idempotent: returns the existing default or creates one."""
        def ensure():
            default, created = self.store.insert_default_if_absent(Schedule.create_default(
                str(uuid.uuid4()),
                hour=settings.DEFAULT_SCHEDULE_HOUR,
                minute=settings.DEFAULT_SCHEDULE_MINUTE,
                exclude_recent_days=settings.DEFAULT_EXCLUDE_RECENT_DAYS,
            ))
            if created:
                logger.info(f"Created default schedule {default.id} at {default.formatted_time}")
            return Result.success(default)

        return self._guard("ensure default schedule", ensure)

    # ------------------------------------------------------------------
    # Targeted updates
    # ------------------------------------------------------------------

    def _update_fields(self, action: str, schedule_id: str, **columns) -> Result[None]:
        def apply():
            if not self.store.update_fields(schedule_id, **columns):
                return Result.failure(f"Schedule not found: {schedule_id}", kind=ErrorKind.NOT_FOUND)
            return Result.success()

        return self._guard(action, apply)

    def update_schedule_enabled(self, schedule_id: str, enabled: bool) -> Result[None]:
        return self._update_fields("update schedule enabled", schedule_id, is_enabled=enabled)

    def update_schedule_time(self, schedule_id: str, hour: int, minute: int) -> Result[None]:
        if not 0 <= hour <= 23:
            return Result.failure(f"scheduled_hour must be between 0 and 23, got {hour}", kind=ErrorKind.VALIDATION)
        if not 0 <= minute <= 59:
            return Result.failure(f"scheduled_minute must be between 0 and 59, got {minute}", kind=ErrorKind.VALIDATION)
        return self._update_fields(
            "update schedule time", schedule_id, scheduled_hour=hour, scheduled_minute=minute,
        )

    def update_delivery_method(self, schedule_id: str, method: DeliveryMethod) -> Result[None]:
        try:
            method = DeliveryMethod(method)
        except ValueError:
            return Result.failure(f"Unknown delivery method: {method}", kind=ErrorKind.VALIDATION)
        return self._update_fields("update delivery method", schedule_id, delivery_method=method.value)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_notification_schedules(self) -> Result[List[Schedule]]:
        return self._guard("list notification schedules", lambda: Result.success(
            self.store.list_schedules(enabled_only=True, method=DeliveryMethod.NOTIFICATION)
        ))

    def get_widget_schedules(self) -> Result[List[Schedule]]:
        return self._guard("list widget schedules", lambda: Result.success(
            self.store.list_schedules(enabled_only=True, method=DeliveryMethod.WIDGET)
        ))

    def has_enabled_schedules(self) -> Result[bool]:
        return self.get_enabled_schedule_count().map(lambda count: count > 0)

    def get_schedule_count(self) -> Result[int]:
        return self._guard("count schedules", lambda: Result.success(self.store.count_schedules()))

    def get_enabled_schedule_count(self) -> Result[int]:
        return self._guard(
            "count enabled schedules",
            lambda: Result.success(self.store.count_schedules(enabled_only=True)),
        )

    def get_most_recent_delivery_date(self) -> Result[Optional[datetime]]:
        return self._guard(
            "read most recent delivery date",
            lambda: Result.success(self.store.most_recent_delivery_date()),
        )

    def get_next_delivery_time(self, schedule_id: str, now: Optional[datetime] = None) -> Result[Optional[datetime]]:
        def compute():
            schedule = self.store.get_schedule(schedule_id)
            if schedule is None:
                return Result.failure(f"Schedule not found: {schedule_id}", kind=ErrorKind.NOT_FOUND)
            return Result.success(next_delivery_time(schedule, self._now(now), self.zone))

        return self._guard("compute next delivery time", compute)

    def get_schedules_ready_for_delivery(self, now: Optional[datetime] = None) -> Result[List[Schedule]]:
        """Enabled schedules due at `now`, read from the store of truth."""
        now = self._now(now)
        return self._guard("list ready schedules", lambda: Result.success([
            schedule for schedule in self.truth.list_schedules(enabled_only=True)
            if is_ready(schedule, now, self.zone)
        ]))

    # ------------------------------------------------------------------
    # Selection and delivery
    # ------------------------------------------------------------------

    def _history_for(self, schedule: Schedule, now: datetime) -> List[DeliveryRecord]:
        cutoff = exclusion_cutoff(schedule, now)
        if cutoff is None:
            return []
        return self.truth.deliveries_since(schedule.id, cutoff)

    def get_next_quote_for_schedule(
        self,
        schedule_id: str,
        now: Optional[datetime] = None,
    ) -> Result[Optional[CatalogQuote]]:
        """
        The quote the schedule would deliver next, or None if nothing is eligible.
        Selection only; nothing is recorded.
        """
        now = self._now(now)

        def pick():
            schedule = self.truth.get_schedule(schedule_id)
            if schedule is None:
                return Result.failure(f"Schedule not found: {schedule_id}", kind=ErrorKind.NOT_FOUND)
            catalog = self.truth.list_quotes(favorites_only=schedule.favorites_only)
            quote_id = select_next(schedule, catalog, self._history_for(schedule, now), now, self.rng)
            if quote_id is None:
                return Result.success(None)
            return Result.success(self.store.get_quote(quote_id))

        return self._guard("select next quote", pick)

    def mark_quote_delivered(
        self,
        schedule_id: str,
        quote_id: str,
        now: Optional[datetime] = None,
    ) -> Result[DeliveryRecord]:
        return self.tracker.record_delivery(schedule_id, quote_id, self._now(now), self.zone)

    def deliver_due_quotes(self, now: Optional[datetime] = None) -> DeliveryBatchReport:
        """
        Deliver one quote to every schedule that is due at `now`.

        Safe to call repeatedly: a schedule already delivered on the current
        local day is not ready, and the history tracker's claim rejects a
        concurrent duplicate.
        """
        now = self._now(now)
        report = DeliveryBatchReport(run_at=now)

        ready = self.get_schedules_ready_for_delivery(now)
        if ready.is_failure:
            report.error = ready.message
            return report
        if not ready.value:
            logger.debug(f"No schedules due at {now.isoformat()}")
            return report

        catalog_result = self._guard("load quote catalog", lambda: Result.success(self.truth.list_quotes()))
        if catalog_result.is_failure:
            report.error = catalog_result.message
            return report
        catalog = catalog_result.value

        for schedule in ready.value:
            try:
                outcome = self._deliver_one(schedule, catalog, now)
            except Exception as e:
                logger.error(f"Unexpected error delivering for schedule {schedule.id}: {e}", exc_info=True)
                outcome = ScheduleDeliveryOutcome(schedule.id, DeliveryOutcome.FAILED, message=str(e))
            report.outcomes.append(outcome)

        logger.info(f"Delivery batch at {now.isoformat()}: {report.counts()}")
        return report

    def _deliver_one(self, schedule: Schedule, catalog: List[CatalogQuote], now: datetime) -> ScheduleDeliveryOutcome:
        try:
            history = self._history_for(schedule, now)
            quote_id = select_next(schedule, catalog, history, now, self.rng)
            quote = self.store.get_quote(quote_id) if quote_id is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load delivery inputs for schedule {schedule.id}: {e}")
            return ScheduleDeliveryOutcome(schedule.id, DeliveryOutcome.FAILED, message=str(e))

        if quote_id is None:
            logger.debug(f"Skipping schedule {schedule.id}: no eligible quote")
            return ScheduleDeliveryOutcome(schedule.id, DeliveryOutcome.NO_ELIGIBLE_QUOTE)
        if quote is None:
            return ScheduleDeliveryOutcome(
                schedule.id, DeliveryOutcome.NOT_FOUND, quote_id=quote_id, message=f"Quote not found: {quote_id}",
            )

        recorded = self.tracker.record_delivery(schedule.id, quote_id, now, self.zone)
        if recorded.is_failure:
            outcome = _OUTCOME_FOR_KIND.get(recorded.kind, DeliveryOutcome.FAILED)
            return ScheduleDeliveryOutcome(schedule.id, outcome, quote_id=quote_id, message=recorded.message)

        accepted = deliver_safely(self.surface, QuoteDelivery(
            quote_id=quote.id,
            schedule_id=schedule.id,
            delivery_method=schedule.delivery_method,
            author=quote.author,
            text=quote.text,
        ))
        return ScheduleDeliveryOutcome(
            schedule.id, DeliveryOutcome.DELIVERED, quote_id=quote_id, surface_accepted=accepted,
        )


def get_schedule_service() -> ScheduleService:
    """FastAPI dependency; tests override it with a service bound to a test database."""
    return ScheduleService()
