"""
Segment snapshot store (Redis).

Keeps a copy of the in-flight segment (target, buffers, last fix) outside
the trip record store so that a restart, or a record store outage, loses
at most the distance since the last snapshot. The same Redis instance
provides the per-trip lock that serialises segment updates across
requests and workers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from driverpay.app.core.config import settings
from driverpay.app.core.exceptions import PersistenceError
from driverpay.app.schemas.tracking import SegmentSnapshot

logger = logging.getLogger("driverpay.snapshot")

SNAPSHOT_KEY_PREFIX = "segment:snapshot:"
LOCK_KEY_PREFIX = "segment:lock:"


class SegmentSnapshotStore:
    """
    Load-on-start, save-on-update snapshot slot per trip.

    Snapshot I/O is best-effort: Redis errors are logged and reported as
    "no snapshot" / "not saved" so the tracker keeps running on the
    record store alone.
    """

    def __init__(
        self,
        redis_client,
        ttl_seconds: Optional[int] = None,
        lock_timeout_seconds: Optional[float] = None,
        lock_wait_seconds: Optional[float] = None,
    ):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds or settings.snapshot_ttl_seconds
        self.lock_timeout_seconds = lock_timeout_seconds or settings.segment_lock_timeout_seconds
        self.lock_wait_seconds = lock_wait_seconds or settings.segment_lock_wait_seconds

    @staticmethod
    def key(trip_id: int) -> str:
        return f"{SNAPSHOT_KEY_PREFIX}{trip_id}"

    @staticmethod
    def lock_key(trip_id: int) -> str:
        return f"{LOCK_KEY_PREFIX}{trip_id}"

    async def load(self, trip_id: int) -> Optional[SegmentSnapshot]:
        try:
            raw = await self.redis.get(self.key(trip_id))
        except RedisError as exc:
            logger.warning("Snapshot read failed for trip %s: %s", trip_id, exc)
            return None
        if not raw:
            return None
        try:
            snapshot = SegmentSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable snapshot for trip %s", trip_id)
            await self.clear(trip_id)
            return None
        if snapshot.trip_id != trip_id:
            return None
        return snapshot

    async def save(self, snapshot: SegmentSnapshot) -> bool:
        try:
            await self.redis.set(
                self.key(snapshot.trip_id),
                snapshot.model_dump_json(),
                ex=self.ttl_seconds,
            )
        except RedisError as exc:
            logger.warning("Snapshot write failed for trip %s: %s", snapshot.trip_id, exc)
            return False
        return True

    async def clear(self, trip_id: int) -> None:
        try:
            await self.redis.delete(self.key(trip_id))
        except RedisError as exc:
            logger.warning("Snapshot clear failed for trip %s: %s", trip_id, exc)

    @asynccontextmanager
    async def lock(self, trip_id: int) -> AsyncIterator[None]:
        """
        Hold the trip's segment lock.

        The lock expires after ``lock_timeout_seconds`` so a crashed worker
        cannot block the trip forever. When Redis is down the body runs
        unlocked, like the rest of the snapshot I/O.

        Raises:
            PersistenceError: another request held the lock for longer than
                ``lock_wait_seconds``
        """
        lock = self.redis.lock(
            self.lock_key(trip_id),
            timeout=self.lock_timeout_seconds,
            blocking_timeout=self.lock_wait_seconds,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            logger.warning("Segment lock unavailable for trip %s, continuing unlocked: %s", trip_id, exc)
            lock = None
            acquired = True

        if lock is None:
            yield
            return
        if not acquired:
            raise PersistenceError("Trip is busy with another update, try again")

        try:
            yield
        finally:
            try:
                await lock.release()
            except RedisError as exc:
                logger.warning("Segment lock release failed for trip %s: %s", trip_id, exc)
