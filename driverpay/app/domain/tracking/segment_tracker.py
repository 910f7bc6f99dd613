"""
Segment tracker (live mileage accumulator).

Turns a stream of GPS fixes into a growing, crash-resumable distance for
the one leg currently being driven (toward a stop or back to the depot),
split into day and night buckets.

States: IDLE -> TRACKING -> IDLE. The buffered distance is only folded
into the trip's mileage when the leg ends; until then it lives in the
buffers, the Redis snapshot (every fix) and the trip record's tracking
fields (at most every ``sync_interval_seconds``).
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Dict, Any, Optional, Union

from driverpay.app.core.exceptions import PersistenceError, SegmentStateError
from driverpay.app.domain.pay.night_window import driver_clock, is_night
from driverpay.app.domain.tracking.geo import distance
from driverpay.app.domain.tracking.location_source import LocationSource
from driverpay.app.models.trip_enums import TrackingState
from driverpay.app.schemas.pay import PaySettingsSchema
from driverpay.app.schemas.tracking import (
    DepotTarget, SegmentSnapshot, StopTarget, decode_target, encode_target
)
from driverpay.app.schemas.trip import GeoPoint, TripRecord
from driverpay.app.services.snapshot_store import SegmentSnapshotStore
from driverpay.app.services.trip_store import TripStore

logger = logging.getLogger("driverpay.tracking")

Target = Union[StopTarget, DepotTarget]


@dataclass
class SegmentTotals:
    """Distance a finished segment contributes to the trip."""
    target: Target
    miles: float
    night_miles: float
    last_location: Optional[GeoPoint]


def cleared_tracking_fields() -> Dict[str, Any]:
    """Tracking columns of a trip with no active segment."""
    return {
        "tracking_active": False,
        "tracking_load_id": None,
        "tracking_stop_id": None,
        "tracking_miles_buffer": 0.0,
        "tracking_night_miles_buffer": 0.0,
        "tracking_last_location": None,
        "tracking_updated_at": None,
    }


class SegmentTracker:
    """
    Accumulates distance for at most one active segment of one trip.

    Fix processing is serialised per trip, not per tracker: every change
    runs under ``exclusive()``, which holds the trip's segment lock and
    first catches up with whatever another request or worker saved. Each
    fix therefore reads the last location, computes its delta and writes
    back before the next fix for the trip is handled.
    """

    def __init__(
        self,
        trip_id: int,
        store: TripStore,
        snapshots: SegmentSnapshotStore,
        location_source: LocationSource,
        pay_settings: PaySettingsSchema,
        clock: Callable[[], datetime],
        sync_interval_seconds: float,
    ):
        self.trip_id = trip_id
        self.store = store
        self.snapshots = snapshots
        self.location_source = location_source
        self.pay_settings = pay_settings
        self.clock = clock
        self.sync_interval = timedelta(seconds=sync_interval_seconds)

        self.state = TrackingState.IDLE
        self.target: Optional[Target] = None
        self.miles_buffer = 0.0
        self.night_miles_buffer = 0.0
        self.last_location: Optional[GeoPoint] = None
        self.last_synced_at: Optional[datetime] = None
        self.sequence = 0
        self.last_delta = 0.0

        self._subscription: Optional[int] = None
        self._lock = asyncio.Lock()

    @property
    def is_tracking(self) -> bool:
        return self.state == TrackingState.TRACKING

    def is_night_at(self, recorded_at: Optional[datetime] = None) -> bool:
        """Night classification at a fix time, or now when the fix has none."""
        instant = recorded_at or self.clock()
        return is_night(driver_clock(instant, self.pay_settings), self.pay_settings)

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[Optional[TripRecord]]:
        """
        Hold the trip's segment lock with the tracker brought up to date.

        Yields the trip record as read under the lock (None if the trip is
        gone). ``start``, ``sync``, ``close`` and ``reset`` expect the
        caller to be inside this block; ``accumulate`` enters it itself.

        Raises:
            PersistenceError: the lock could not be taken in time, or the
                record store read failed
        """
        async with self._lock:
            async with self.snapshots.lock(self.trip_id):
                record = await self.store.get(self.trip_id)
                await self._restore(record)
                yield record

    # Lifecycle

    async def start(self, target: Target, fix: GeoPoint) -> TripRecord:
        """
        Open a segment at ``fix`` with empty buffers.

        The initial state is written to the record store before the
        tracker switches to TRACKING, so a failed write leaves it IDLE.
        """
        if self.is_tracking:
            raise SegmentStateError(
                "Another segment is already being tracked",
                details={"active_target": self.target.model_dump() if self.target else None},
            )

        now = self.clock()
        load_id, stop_id = encode_target(target)
        record = await self.store.update(
            self.trip_id,
            tracking_active=True,
            tracking_load_id=load_id,
            tracking_stop_id=stop_id,
            tracking_miles_buffer=0.0,
            tracking_night_miles_buffer=0.0,
            tracking_last_location=fix,
            tracking_updated_at=now,
        )

        self.target = target
        self.miles_buffer = 0.0
        self.night_miles_buffer = 0.0
        self.last_location = fix
        self.last_synced_at = now
        self.state = TrackingState.TRACKING
        self._subscribe()
        await self._save_snapshot()

        logger.info("Trip %s: segment started toward %s", self.trip_id, target.model_dump())
        return record

    async def resume(self, record: TripRecord) -> bool:
        """
        Restore an in-flight segment after a restart.

        The record's tracking fields name the active target. A snapshot for
        the same target that is at least as recent as the record's last
        sync replaces the record's buffers. Snapshots without a matching
        active target are stale and are dropped.

        Returns:
            True if a segment was resumed
        """
        await self._restore(record)
        return self.is_tracking

    async def accumulate(self, fix: GeoPoint, recorded_at: Optional[datetime] = None) -> float:
        """
        Add the distance from the last fix to ``fix``.

        Night classification is evaluated for this fix alone, so a long
        segment crossing the window boundary is split correctly.

        Returns:
            The delta in miles (0 for duplicate fixes)
        """
        async with self.exclusive():
            return await self._apply(fix, recorded_at)

    async def sync(self) -> Optional[TripRecord]:
        """
        Write the buffered state to the record store.

        Raises:
            PersistenceError: the record store write failed
        """
        if not self.is_tracking:
            return None
        now = self.clock()
        record = await self.store.update(
            self.trip_id,
            tracking_miles_buffer=self.miles_buffer,
            tracking_night_miles_buffer=self.night_miles_buffer,
            tracking_last_location=self.last_location,
            tracking_updated_at=now,
        )
        self.last_synced_at = now
        return record

    async def close(self, final_fix: Optional[GeoPoint] = None) -> SegmentTotals:
        """
        Take the segment's totals for folding into the trip.

        The final fix, when given, is accumulated first. The tracker stays
        TRACKING until ``reset`` so a failed fold can be retried.
        """
        if not self.is_tracking:
            raise SegmentStateError("No segment is being tracked")
        if final_fix is not None:
            await self._apply(final_fix)
        return SegmentTotals(
            target=self.target,
            miles=self.miles_buffer,
            night_miles=self.night_miles_buffer,
            last_location=self.last_location,
        )

    async def reset(self) -> None:
        """Stop the subscription and return to IDLE with empty buffers."""
        self._go_idle()
        await self.snapshots.clear(self.trip_id)

    # Internals

    async def _apply(self, fix: GeoPoint, recorded_at: Optional[datetime] = None) -> float:
        if not self.is_tracking:
            raise SegmentStateError("No segment is being tracked")

        delta = distance(self.last_location, fix) if self.last_location is not None else 0.0
        if delta > 0:
            self.miles_buffer += delta
            if self.is_night_at(recorded_at):
                self.night_miles_buffer += delta
        self.last_location = fix
        self.last_delta = delta

        await self._save_snapshot()
        await self._maybe_sync()
        return delta

    async def _restore(self, record: Optional[TripRecord]) -> None:
        """
        Line the tracker up with the stored segment.

        The record says whether a segment is active and toward what. The
        snapshot is newer state for that segment when its sequence is
        ahead of ours; when the tracker was idle or following another
        target it also wins over the record if saved after the last sync.
        """
        target = None
        if record is not None and record.tracking_active:
            target = decode_target(record.tracking_load_id, record.tracking_stop_id)
        snapshot = await self.snapshots.load(self.trip_id)

        if target is None:
            if snapshot is not None:
                logger.info("Trip %s: dropping stale segment snapshot", self.trip_id)
                await self.snapshots.clear(self.trip_id)
            if self.is_tracking:
                logger.info("Trip %s: segment was closed elsewhere", self.trip_id)
                self._go_idle()
            return

        if snapshot is not None and decode_target(snapshot.active_load_id, snapshot.active_stop_id) != target:
            logger.info("Trip %s: snapshot targets another segment, dropping it", self.trip_id)
            await self.snapshots.clear(self.trip_id)
            snapshot = None

        if self.is_tracking and self.target == target:
            if snapshot is not None and snapshot.sequence > self.sequence:
                self._adopt_snapshot(snapshot)
            return

        self.target = target
        self.miles_buffer = record.tracking_miles_buffer
        self.night_miles_buffer = record.tracking_night_miles_buffer
        self.last_location = record.tracking_last_location
        self.last_synced_at = record.tracking_updated_at
        self.sequence = 0
        if snapshot is not None:
            self.sequence = snapshot.sequence
            if record.tracking_updated_at is None or snapshot.updated_at >= record.tracking_updated_at:
                self._adopt_snapshot(snapshot)
        self.state = TrackingState.TRACKING
        self._subscribe()

        logger.info(
            "Trip %s: resumed segment toward %s with %.3f mi buffered",
            self.trip_id, target.model_dump(), self.miles_buffer,
        )

    def _adopt_snapshot(self, snapshot: SegmentSnapshot) -> None:
        self.miles_buffer = snapshot.tracking_miles_buffer
        self.night_miles_buffer = snapshot.tracking_night_miles_buffer
        self.last_location = snapshot.last_coords or self.last_location
        self.sequence = snapshot.sequence

    def _go_idle(self) -> None:
        if self._subscription is not None:
            self.location_source.cancel(self._subscription)
            self._subscription = None
        self.state = TrackingState.IDLE
        self.target = None
        self.miles_buffer = 0.0
        self.night_miles_buffer = 0.0
        self.last_location = None
        self.last_synced_at = None

    def _subscribe(self) -> None:
        if self._subscription is None:
            self._subscription = self.location_source.watch(self.accumulate, self._on_location_error)

    async def _on_location_error(self, error: Exception) -> None:
        # Buffers are kept; the segment continues with the next good fix
        logger.warning("Trip %s: location stream error: %s", self.trip_id, error)

    async def _save_snapshot(self) -> None:
        self.sequence += 1
        load_id, stop_id = encode_target(self.target)
        await self.snapshots.save(SegmentSnapshot(
            trip_id=self.trip_id,
            active_load_id=load_id,
            active_stop_id=stop_id,
            tracking_miles_buffer=self.miles_buffer,
            tracking_night_miles_buffer=self.night_miles_buffer,
            last_coords=self.last_location,
            updated_at=self.clock(),
            sequence=self.sequence,
        ))

    async def _maybe_sync(self) -> None:
        """Best-effort periodic record store sync."""
        if self.last_synced_at is not None and self.clock() - self.last_synced_at < self.sync_interval:
            return
        try:
            await self.sync()
        except PersistenceError as exc:
            logger.warning("Trip %s: periodic segment sync failed: %s", self.trip_id, exc.message)
