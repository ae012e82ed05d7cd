"""
Quote Widget Slot

The widget surface reads the most recently delivered quote from a single
Redis slot. The delivery batch writes it; the API reads it.

- Read: current / stale / missing
- Write: quote payload with delivery metadata
- Dedupe: in-flight lock for the delivery batch

Redis is optional. Without it the slot reads as missing and the lock fails
open; the database compare-and-swap still prevents duplicate deliveries.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from redis.exceptions import RedisError

from core.cache import get_json, get_redis_client, set_json
from core.config import settings

logger = logging.getLogger(__name__)

WIDGET_KEY = "quote_widget:current"
DELIVERY_LOCK_KEY = "quote_delivery:lock"
CURRENT_THRESHOLD_S = 24 * 3600   # older than a day reads as stale


class WidgetState(str, Enum):
    CURRENT = "current"
    STALE = "stale"
    MISSING = "missing"


def write_widget_quote(
    quote_id: str,
    schedule_id: str,
    author: str,
    text: str,
    delivered_at: Optional[datetime] = None,
) -> bool:
    delivered_at = delivered_at or datetime.now(timezone.utc)
    entry = {
        "payload": {
            "quote_id": quote_id,
            "author": author,
            "text": text,
        },
        "schedule_id": schedule_id,
        "delivered_at": delivered_at.isoformat(),
    }
    written = set_json(WIDGET_KEY, entry, settings.WIDGET_QUOTE_TTL_S)
    if written:
        logger.info(f"Widget quote set to {quote_id} (schedule {schedule_id})")
    return written


def read_widget_quote(now: Optional[datetime] = None) -> Tuple[Optional[Dict[str, Any]], WidgetState]:
    """Returns (payload_or_none, state)."""
    entry = get_json(WIDGET_KEY)
    if not isinstance(entry, dict) or "payload" not in entry:
        return None, WidgetState.MISSING

    try:
        delivered_at = datetime.fromisoformat(entry["delivered_at"])
    except (KeyError, ValueError, TypeError):
        return None, WidgetState.MISSING

    now = now or datetime.now(timezone.utc)
    age_s = (now - delivered_at).total_seconds()
    state = WidgetState.CURRENT if age_s < CURRENT_THRESHOLD_S else WidgetState.STALE
    return {**entry["payload"], "delivered_at": entry["delivered_at"]}, state


def acquire_delivery_lock(ttl_s: Optional[int] = None) -> Optional[str]:
    """
    In-flight lock for a delivery batch.

    Returns the owner token if acquired (or Redis is unavailable), None if
    another run holds it. Pass the token to release_delivery_lock().
    """
    token = uuid.uuid4().hex
    r = get_redis_client()
    if not r:
        return token  # fail open

    try:
        acquired = r.set(DELIVERY_LOCK_KEY, token, nx=True, ex=ttl_s or settings.DELIVERY_LOCK_TTL_S)
        return token if acquired else None
    except RedisError as e:
        logger.warning(f"Delivery lock unavailable, proceeding without it: {e}")
        return token  # fail open


def release_delivery_lock(token: str) -> bool:
    """
    Release the lock if `token` still owns it. A lock that expired and was
    taken by a newer run is left alone. The TTL outlives the task's hard
    time limit, so the owner cannot lose the key between the check and the
    delete.
    """
    r = get_redis_client()
    if not r:
        return False
    try:
        if r.get(DELIVERY_LOCK_KEY) != token:
            logger.warning("Delivery lock no longer owned by this run; leaving it")
            return False
        r.delete(DELIVERY_LOCK_KEY)
        return True
    except RedisError as e:
        logger.warning(f"Failed to release delivery lock (expires in TTL): {e}")
        return False
