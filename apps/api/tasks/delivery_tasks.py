"""
Quote Delivery Celery Task

Hourly beat task that delivers a quote to every schedule that is due.

Task contract:
- Idempotent: a schedule delivers at most once per local day
- Deduplicated via Redis in-flight lock (fail-open)
- Never raises out of the batch; returns a summary dict
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from celery import Task
from celery.exceptions import SoftTimeLimitExceeded

from core.config import settings
from tasks import celery_app
from services.quote_widget_cache import acquire_delivery_lock, release_delivery_lock
from services.schedule_service import ScheduleService

logger = logging.getLogger(__name__)

TASK_SOFT_TIMEOUT_S = 5 * 60
TASK_HARD_TIMEOUT_S = 6 * 60
LOCK_MARGIN_S = 60


def lock_ttl_s() -> int:
    """The lock must outlive a run, so a slow run never loses it to the next one."""
    return max(settings.DELIVERY_LOCK_TTL_S, TASK_HARD_TIMEOUT_S + LOCK_MARGIN_S)


def run_delivery_batch(
    service: Optional[ScheduleService] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """Deliver due quotes once, under the in-flight lock."""
    token = acquire_delivery_lock(lock_ttl_s())
    if token is None:
        logger.info("Quote delivery skipped: another run holds the lock")
        return {"status": "skipped", "reason": "locked"}

    try:
        service = service or ScheduleService()
        report = service.deliver_due_quotes(now)
        if report.error:
            logger.error(f"Quote delivery batch failed: {report.error}")
            return {"status": "error", "error": report.error, "run_at": report.run_at.isoformat()}
        return {"status": "ok", **report.to_dict()}
    finally:
        release_delivery_lock(token)


@celery_app.task(
    name="tasks.deliver_due_quotes",
    bind=True,
    max_retries=0,
    soft_time_limit=TASK_SOFT_TIMEOUT_S,
    time_limit=TASK_HARD_TIMEOUT_S,
)
def deliver_due_quotes_task(self: Task) -> Dict:
    """
    Celery beat task: deliver quotes for schedules due this hour.
    Runs at the top of every hour via celerybeat_schedule.
    """
    started = datetime.now(timezone.utc)
    try:
        result = run_delivery_batch(now=started)
    except SoftTimeLimitExceeded:
        # Deliveries recorded before the limit stay recorded.
        logger.error("Quote delivery batch hit its soft time limit")
        return {"status": "error", "error": "soft_time_limit_exceeded"}
    except Exception as e:
        logger.error(f"Quote delivery beat failed: {e}", exc_info=True)
        return {"status": "error", "error": str(e)}

    elapsed = (datetime.now(timezone.utc) - started).total_seconds()
    logger.info(f"Quote delivery beat finished in {elapsed:.1f}s: {result.get('status')}")
    return result
