"""
Pytest configuration and fixtures

Database tests run against a fresh in-memory SQLite database per test,
created from the ORM metadata. Nothing is shared between tests.
Redis is disabled by default; tests that need it use the `fake_redis`
fixture.
"""
import pytest
import random
import sys
import os
from datetime import datetime, timezone
from typing import List
from unittest.mock import patch

# Must be set before core.database builds its engine at import time.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import sessionmaker  # noqa: E402

from core.database import Base, create_db_engine  # noqa: E402
from core.memory_cache import MemoryCache  # noqa: E402
from models import Quote  # noqa: E402
from services.delivery_surface import DeliverySurface  # noqa: E402
from services.quote_schedule import QuoteDelivery  # noqa: E402
from services.schedule_service import ScheduleService  # noqa: E402
from services.schedule_store import ScheduleStore  # noqa: E402


class FakeRedis:
    """Minimal in-memory Redis mock for unit tests."""

    def __init__(self):
        self._store: dict = {}
        self._ttls: dict = {}

    def get(self, key):
        return self._store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self._store:
            return False
        self._store[key] = value
        if ex:
            self._ttls[key] = ex
        return True

    def setex(self, key, ttl, value):
        self._store[key] = value
        self._ttls[key] = ttl

    def delete(self, *keys):
        for k in keys:
            self._store.pop(k, None)
            self._ttls.pop(k, None)

    def mget(self, keys):
        return [self._store.get(k) for k in keys]

    def incr(self, key, amount=1):
        value = int(self._store.get(key) or 0) + amount
        self._store[key] = str(value)
        return value

    def exists(self, key):
        return key in self._store

    def ping(self):
        return True


class RecordingSurface(DeliverySurface):
    """Delivery surface that remembers what it was given."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.deliveries: List[QuoteDelivery] = []

    def deliver(self, delivery: QuoteDelivery) -> bool:
        self.deliveries.append(delivery)
        return self.accept


@pytest.fixture(autouse=True)
def _no_redis():
    """Behave as if Redis is unreachable unless a test opts in."""
    with patch("core.cache.get_redis_client", return_value=None), \
            patch("services.quote_widget_cache.get_redis_client", return_value=None):
        yield


@pytest.fixture
def fake_redis():
    """Provide a FakeRedis and patch every get_redis_client lookup to return it."""
    r = FakeRedis()
    with patch("core.cache.get_redis_client", return_value=r), \
            patch("services.quote_widget_cache.get_redis_client", return_value=r):
        yield r


@pytest.fixture
def db_engine():
    engine = create_db_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(session_factory):
    return ScheduleStore(session_factory)


@pytest.fixture
def cache():
    return MemoryCache(max_size=50)


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def service(store, cache, surface):
    return ScheduleService(
        store=store,
        cache=cache,
        surface=surface,
        zone=timezone.utc,
        rng=random.Random(7),
    )


@pytest.fixture
def add_quote(session_factory):
    """Insert a quote row and return its id."""

    def _add(quote_id: str, categories=None, is_favorite: bool = False,
             author: str = "Seneca", text: str = "Luck is what happens when preparation meets opportunity."):
        with session_factory() as db:
            db.add(Quote(
                id=quote_id,
                author=author,
                text=text,
                categories=list(categories) if categories else None,
                is_favorite=is_favorite,
                created_at=datetime.now(timezone.utc),
            ))
            db.commit()
        return quote_id

    return _add
