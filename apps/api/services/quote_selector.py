"""
Quote Eligibility Selector

Decides which quote a schedule delivers next:

1. Candidates: the catalog, narrowed to favorites when the schedule is
   favorites-only, then to quotes sharing at least one category with the
   schedule's category filter (empty filter = every category).
2. Exclusions: the schedule's last delivered quote, plus every quote this
   schedule delivered within the last `exclude_recent_days` days.
3. Eligible = candidates - exclusions, picked uniformly at random.

Exclusion is scoped to the schedule: two schedules may deliver the same
quote independently. The window is time-bounded so a small catalog never
exhausts itself permanently.

An empty eligible set returns None. That is an expected outcome, not an
error; callers skip the delivery for this cycle.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Set
import logging
import random

from services.quote_schedule import CatalogQuote, DeliveryRecord, Schedule, ensure_utc

logger = logging.getLogger(__name__)


def candidate_quotes(schedule: Schedule, catalog: Iterable[CatalogQuote]) -> List[CatalogQuote]:
    """Apply the favorites and category filters."""
    candidates = list(catalog)
    if schedule.favorites_only:
        candidates = [quote for quote in candidates if quote.is_favorite]
    if schedule.categories:
        candidates = [quote for quote in candidates if quote.categories & schedule.categories]
    return candidates


def exclusion_cutoff(schedule: Schedule, now: datetime) -> Optional[datetime]:
    """Start of the recency window, or None when recency exclusion is off."""
    if schedule.exclude_recent_days <= 0:
        return None
    return ensure_utc(now) - timedelta(days=schedule.exclude_recent_days)


def excluded_quote_ids(
    schedule: Schedule,
    history: Iterable[DeliveryRecord],
    now: datetime,
) -> Set[str]:
    """Quote ids this schedule must not deliver right now."""
    excluded: Set[str] = set()
    if schedule.last_delivered_quote_id:
        excluded.add(schedule.last_delivered_quote_id)

    cutoff = exclusion_cutoff(schedule, now)
    if cutoff is not None:
        excluded.update(
            record.quote_id
            for record in history
            if record.schedule_id == schedule.id and ensure_utc(record.delivered_at) >= cutoff
        )
    return excluded


def eligible_quote_ids(
    schedule: Schedule,
    catalog: Iterable[CatalogQuote],
    history: Iterable[DeliveryRecord],
    now: datetime,
) -> List[str]:
    """Eligible quote ids in stable (sorted) order."""
    excluded = excluded_quote_ids(schedule, history, now)
    return sorted({quote.id for quote in candidate_quotes(schedule, catalog)} - excluded)


def select_next(
    schedule: Schedule,
    catalog: Iterable[CatalogQuote],
    history: Iterable[DeliveryRecord],
    now: datetime,
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """
    Pick the next quote id for a schedule, or None if nothing is eligible.

    `rng` makes the choice reproducible in tests; the module-level random
    generator is used otherwise.
    """
    eligible = eligible_quote_ids(schedule, catalog, history, now)
    if not eligible:
        logger.debug(f"No eligible quote for schedule {schedule.id}")
        return None
    return (rng or random).choice(eligible)
