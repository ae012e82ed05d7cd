"""
Delivery History Tracker

Records a fulfilled delivery.

History older than the retention window is pruned first, in its own
transaction (best-effort), so expired records are gone after every call
whatever its outcome. Then one transaction:

    1. check that the schedule and the quote exist
    2. insert the delivery record and a `quote_delivered` user event
    3. compare-and-swap the schedule's last-delivery pointer, only if the
       schedule has not already delivered on the current local day

If the swap matches no row the whole transaction rolls back, so a losing
concurrent run leaves no orphan history row behind.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from core.result import ErrorKind, Result
from services.activity_streaks import QUOTE_DELIVERED
from services.delivery_readiness import local_day_bounds
from services.quote_schedule import DeliveryRecord, ensure_utc, resolve_zone

logger = logging.getLogger(__name__)


class _ClaimRejected(Exception):
    """Raised inside the transaction to force a rollback."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class DeliveryHistoryTracker:
    def __init__(
        self,
        store,
        retention_days: int = settings.DELIVERY_RETENTION_DAYS,
        zone: Optional[tzinfo] = None,
    ):
        self.store = store
        self.retention_days = retention_days
        self.zone = zone

    def record_delivery(
        self,
        schedule_id: str,
        quote_id: str,
        now: Optional[datetime] = None,
        zone: Optional[tzinfo] = None,
    ) -> Result[DeliveryRecord]:
        now = ensure_utc(now) or datetime.now(timezone.utc)
        zone = resolve_zone(zone or self.zone)
        record = DeliveryRecord(quote_id=quote_id, schedule_id=schedule_id, delivered_at=now)
        day_start, _ = local_day_bounds(now, zone)

        self._prune(now)

        try:
            with self.store.transaction() as db:
                if not self.store.schedule_exists_in(db, schedule_id):
                    raise _ClaimRejected(ErrorKind.NOT_FOUND, f"Schedule not found: {schedule_id}")
                if not self.store.quote_exists_in(db, quote_id):
                    raise _ClaimRejected(ErrorKind.NOT_FOUND, f"Quote not found: {quote_id}")

                self.store.insert_delivery_in(db, record)
                self.store.add_user_event_in(
                    db,
                    QUOTE_DELIVERED,
                    now,
                    related_entity_id=quote_id,
                    details={"schedule_id": schedule_id},
                )

                if not self.store.claim_last_delivery_in(db, schedule_id, quote_id, now, day_start):
                    raise _ClaimRejected(
                        ErrorKind.ALREADY_DELIVERED,
                        f"Schedule {schedule_id} already delivered today",
                    )
        except _ClaimRejected as rejected:
            logger.debug(f"Delivery for schedule {schedule_id} rejected: {rejected.message}")
            return Result.failure(rejected.message, kind=rejected.kind)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record delivery of quote {quote_id} for schedule {schedule_id}: {e}")
            return Result.failure(
                f"Failed to record delivery: {e}",
                kind=ErrorKind.PERSISTENCE_FAILURE,
                cause=e,
            )
        finally:
            self.store.invalidate_schedule(schedule_id)

        logger.info(f"Recorded delivery of quote {quote_id} for schedule {schedule_id}")
        return Result.success(record)

    def _prune(self, now: datetime) -> int:
        """Delete records past retention. A failure is logged and otherwise ignored."""
        cutoff = now - timedelta(days=self.retention_days)
        try:
            with self.store.transaction() as db:
                removed = self.store.prune_deliveries_in(db, cutoff)
        except SQLAlchemyError as e:
            logger.warning(f"Pruning delivery history before {cutoff.isoformat()} failed: {e}")
            return 0
        if removed:
            logger.debug(f"Pruned {removed} delivery records older than {cutoff.isoformat()}")
        return removed
