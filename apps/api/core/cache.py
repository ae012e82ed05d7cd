"""
Redis access layer

Shared Redis client plus small JSON and counter helpers. Used for the widget
quote slot, the delivery batch in-flight lock and the generation stamps that
keep per-process schedule caches coherent. Degrades gracefully: when Redis
is unavailable every helper returns its "nothing happened" value and callers
carry on without it.
"""
import json
import logging
from typing import Optional, Any, Tuple
import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError
from core.config import settings

logger = logging.getLogger(__name__)

# Redis connection pool (singleton)
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Get Redis client with connection pooling. Returns None if Redis unavailable."""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    try:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        # Test connection
        _redis_client.ping()
        logger.info("Redis connection established")
        return _redis_client
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable: {e}. Widget slot and delivery lock disabled.")
        _redis_client = None
        return None


def get_json(key: str) -> Optional[Any]:
    """Get a JSON value. Returns None if not found or Redis unavailable."""
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        if value:
            return json.loads(value)
        return None
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis get error for key {key}: {e}")
        return None
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Discarding undecodable Redis value for key {key}")
        return None


def set_json(key: str, value: Any, ttl: int) -> bool:
    """Set a JSON value with expiry. Returns True if successful, False otherwise."""
    client = get_redis_client()
    if not client:
        return False

    try:
        client.setex(
            key,
            ttl,
            json.dumps(value, default=str)  # default=str handles datetime etc.
        )
        return True
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis set error for key {key}: {e}")
        return False


def get_counters(*keys: str) -> Optional[Tuple[int, ...]]:
    """Read integer counters in one round trip (absent keys read as 0). None if Redis unavailable."""
    client = get_redis_client()
    if not client:
        return None

    try:
        values = client.mget(list(keys))
        return tuple(int(value or 0) for value in values)
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis counter read error for keys {keys}: {e}")
        return None
    except (TypeError, ValueError):
        logger.warning(f"Non-integer Redis counter among keys {keys}")
        return None


def incr_counter(key: str) -> Optional[int]:
    """Increment a counter. Returns the new value, or None if Redis unavailable."""
    client = get_redis_client()
    if not client:
        return None

    try:
        return int(client.incr(key))
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis incr error for key {key}: {e}")
        return None
