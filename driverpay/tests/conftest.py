"""
Centralized Test Configuration.
"""

import asyncio
import math
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient, ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from driverpay.app.main import app
from driverpay.app.db.session import get_db, Base
from driverpay.app.core.jwt import create_driver_token
from driverpay.app.core.redis_client import get_redis
from driverpay.app.domain.tracking.geo import EARTH_RADIUS_MILES
from driverpay.app.domain.tracking.location_source import ReportedLocationSource
from driverpay.app.schemas.trip import GeoPoint
from driverpay.app.services.snapshot_store import SegmentSnapshotStore
from driverpay.app.services.trip_store import TripStore

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DRIVER_ID = "driver-1"
OTHER_DRIVER_ID = "driver-2"


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.locks = {}
        self.fail = False
        self._closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Redis unavailable")

    async def ping(self):
        self._check()
        return not self._closed

    async def get(self, key):
        self._check()
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        if self._closed:
            return False
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key):
        self._check()
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    def lock(self, name, timeout=None, blocking_timeout=None):
        return MockLock(self, name, blocking_timeout)

    async def flushdb(self):
        self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


class MockLock:
    """In-process stand-in for a redis-py lock; one asyncio lock per name."""

    def __init__(self, redis, name, blocking_timeout=None):
        self.redis = redis
        self.name = name
        self.blocking_timeout = blocking_timeout

    async def acquire(self):
        self.redis._check()
        lock = self.redis.locks.setdefault(self.name, asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), self.blocking_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def release(self):
        self.redis.locks[self.name].release()


class FakeClock:
    """Settable clock; returns aware UTC datetimes."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeLocationSource(ReportedLocationSource):
    """Reported source whose current fix can be changed between calls."""

    def set_fix(self, fix: GeoPoint) -> None:
        self._fix = fix
        self._error = None

    def deny(self, reason: str = "PERMISSION_DENIED") -> None:
        self._fix = None
        self._error = reason


def point_at(miles: float) -> GeoPoint:
    """Point ``miles`` north of (0, 0) along the prime meridian."""
    return GeoPoint(lat=math.degrees(miles / EARTH_RADIUS_MILES), lng=0.0)


def fix_body(miles: float) -> dict:
    point = point_at(miles)
    return {"location": {"latitude": point.lat, "longitude": point.lng}}


# Database engine per test function
@pytest.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def clock():
    # 18:00 UTC, a Wednesday
    return FakeClock(datetime(2024, 5, 15, 18, 0, tzinfo=timezone.utc))


@pytest.fixture
def location_source():
    return FakeLocationSource(fix=point_at(0.0))


@pytest.fixture
def trip_store(db_session):
    return TripStore(db_session)


@pytest.fixture
def snapshot_store(mock_redis):
    return SegmentSnapshotStore(mock_redis, ttl_seconds=3600)


@pytest.fixture
async def client(session_factory, mock_redis):
    """Async client for testing."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_driver_token(DRIVER_ID)}"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": f"Bearer {create_driver_token(OTHER_DRIVER_ID)}"}
