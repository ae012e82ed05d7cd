"""
Cached Schedule Store

Read-through / write-invalidate composition of a ScheduleStore and a
MemoryCache. Single-schedule and single-quote reads are served from the
SCHEDULE and QUOTE partitions; every mutation removes the affected key so
the next read goes back to the store of truth.

Schedules are written by more than one process (API and worker), so a
cached schedule is stamped with the schedule's generation, a pair of Redis
counters: a global epoch bumped by delete-all and a per-schedule counter
bumped after every write. A cached copy is served only while its stamp
matches the current generation. The stamp is read before the row, so a
write that lands between the two leaves an entry that never matches.
Without Redis the generation is unknown and schedule reads go to the store.

Quotes are read-only to this engine and are cached without a stamp.

List queries are not cached: readiness and selection must see current
rows, and those lists change with every delivery.
"""

from datetime import datetime
from typing import List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from core.cache import get_counters, incr_counter
from core.memory_cache import CacheType, MemoryCache, memory_cache
from services.quote_schedule import CatalogQuote, DeliveryMethod, DeliveryRecord, Schedule
from services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

SCHEDULE_EPOCH_KEY = "quote_schedule:epoch"
SCHEDULE_GENERATION_PREFIX = "quote_schedule:gen:"


def _generation_key(schedule_id: str) -> str:
    return f"{SCHEDULE_GENERATION_PREFIX}{schedule_id}"


class CachedScheduleStore:
    def __init__(self, store: ScheduleStore, cache: Optional[MemoryCache] = None):
        self.store = store
        self.cache = cache if cache is not None else memory_cache

    # --- cached reads -------------------------------------------------

    def get_schedule(self, schedule_id: str) -> Optional[Schedule]:
        generation = get_counters(SCHEDULE_EPOCH_KEY, _generation_key(schedule_id))
        if generation is None:
            return self.store.get_schedule(schedule_id)

        cached = self.cache.get(CacheType.SCHEDULE, schedule_id)
        if cached is not None:
            stamp, schedule = cached
            if stamp == generation:
                return schedule
            self.cache.remove(CacheType.SCHEDULE, schedule_id)

        schedule = self.store.get_schedule(schedule_id)
        if schedule is not None:
            self.cache.put(CacheType.SCHEDULE, schedule_id, (generation, schedule))
        return schedule

    def get_quote(self, quote_id: str) -> Optional[CatalogQuote]:
        cached = self.cache.get(CacheType.QUOTE, quote_id)
        if cached is not None:
            return cached
        quote = self.store.get_quote(quote_id)
        if quote is not None:
            self.cache.put(CacheType.QUOTE, quote_id, quote)
        return quote

    # --- mutations (invalidate) ---------------------------------------

    def insert_schedule(self, schedule: Schedule) -> Schedule:
        created = self.store.insert_schedule(schedule)
        self.invalidate_schedule(created.id)
        return created

    def insert_default_if_absent(self, schedule: Schedule) -> Tuple[Schedule, bool]:
        default, created = self.store.insert_default_if_absent(schedule)
        if created:
            self.invalidate_schedule(default.id)
        return default, created

    def update_schedule(self, schedule: Schedule) -> Optional[Schedule]:
        updated = self.store.update_schedule(schedule)
        self.invalidate_schedule(schedule.id)
        return updated

    def update_fields(self, schedule_id: str, **columns) -> bool:
        matched = self.store.update_fields(schedule_id, **columns)
        self.invalidate_schedule(schedule_id)
        return matched

    def delete_schedule(self, schedule_id: str) -> bool:
        deleted = self.store.delete_schedule(schedule_id)
        self.invalidate_schedule(schedule_id)
        return deleted

    def delete_all_schedules(self) -> int:
        deleted = self.store.delete_all_schedules()
        self.cache.clear(CacheType.SCHEDULE)
        incr_counter(SCHEDULE_EPOCH_KEY)
        return deleted

    def invalidate_schedule(self, schedule_id: str) -> None:
        """Drop the local copy and retire every other process's copy."""
        self.cache.remove(CacheType.SCHEDULE, schedule_id)
        incr_counter(_generation_key(schedule_id))

    # --- uncached pass-through ----------------------------------------

    def transaction(self):
        return self.store.transaction()

    def list_schedules(self, enabled_only: bool = False,
                       method: Optional[DeliveryMethod] = None) -> List[Schedule]:
        return self.store.list_schedules(enabled_only=enabled_only, method=method)

    def get_default_schedule(self) -> Optional[Schedule]:
        return self.store.get_default_schedule()

    def count_schedules(self, enabled_only: bool = False) -> int:
        return self.store.count_schedules(enabled_only=enabled_only)

    def most_recent_delivery_date(self) -> Optional[datetime]:
        return self.store.most_recent_delivery_date()

    def list_quotes(self, favorites_only: bool = False) -> List[CatalogQuote]:
        return self.store.list_quotes(favorites_only=favorites_only)

    def deliveries_since(self, schedule_id: str, cutoff: datetime) -> List[DeliveryRecord]:
        return self.store.deliveries_since(schedule_id, cutoff)

    def list_deliveries(self, schedule_id: Optional[str] = None) -> List[DeliveryRecord]:
        return self.store.list_deliveries(schedule_id)

    def insert_delivery_in(self, db: Session, record: DeliveryRecord) -> None:
        self.store.insert_delivery_in(db, record)

    def prune_deliveries_in(self, db: Session, older_than: datetime) -> int:
        return self.store.prune_deliveries_in(db, older_than)

    def claim_last_delivery_in(self, db: Session, schedule_id: str, quote_id: str,
                               delivered_at: datetime, day_start: datetime) -> bool:
        return self.store.claim_last_delivery_in(db, schedule_id, quote_id, delivered_at, day_start)

    def schedule_exists_in(self, db: Session, schedule_id: str) -> bool:
        return self.store.schedule_exists_in(db, schedule_id)

    def quote_exists_in(self, db: Session, quote_id: str) -> bool:
        return self.store.quote_exists_in(db, quote_id)

    def add_user_event_in(self, db: Session, event_type: str, occurred_at: datetime,
                          related_entity_id: Optional[str] = None, details=None) -> None:
        self.store.add_user_event_in(db, event_type, occurred_at,
                                     related_entity_id=related_entity_id, details=details)
