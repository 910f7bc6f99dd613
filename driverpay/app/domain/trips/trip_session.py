"""
Trip state machine.

A ``TripSession`` owns one open trip, the driver's pay settings and the
segment tracker for that trip. Every mutation is read-modify-write under
the trip's segment lock: the trip is re-read, the new fields (with the
recomputed ``total_pay`` whenever mileage, loads or stops change) are
written to the record store first and only then replace the in-memory
trip, so a failed write leaves the session as it was.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, List, Optional

from driverpay.app.core.config import settings as app_settings
from driverpay.app.core.exceptions import (
    DomainValidationError, LocationPermissionError, ResourceNotFoundError,
    SegmentStateError, StopOrderError, TripFinishedError
)
from driverpay.app.domain.pay.pay_calculator import calculate_pay, pay_breakdown
from driverpay.app.domain.tracking.location_source import LocationSource, acquire_fix
from driverpay.app.domain.tracking.segment_tracker import (
    SegmentTracker, SegmentTotals, Target, cleared_tracking_fields
)
from driverpay.app.domain.trips.load_state import (
    can_depart_to_depot, can_depart_to_stop, find_load, find_stop,
    first_pending_stop, fresh_stops, load_status, new_load, replace_load
)
from driverpay.app.models.trip_enums import LoadType
from driverpay.app.schemas.pay import PayBreakdown, PaySettingsSchema
from driverpay.app.schemas.tracking import DepotTarget, SegmentStatusResponse, StopTarget
from driverpay.app.schemas.trip import GeoPoint, Load, TripRecord
from driverpay.app.services.snapshot_store import SegmentSnapshotStore
from driverpay.app.services.trip_store import TripStore

logger = logging.getLogger("driverpay.trips")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TripSession:
    """
    Load/stop lifecycle and mileage bookkeeping for one trip.

    Flow per load:
    begin load -> depart to stop -> arrive at stop -> ... ->
    depart to depot -> arrive at depot
    """

    def __init__(
        self,
        trip: TripRecord,
        pay_settings: PaySettingsSchema,
        store: TripStore,
        snapshots: SegmentSnapshotStore,
        location_source: LocationSource,
        clock: Optional[Callable[[], datetime]] = None,
        fix_timeout_seconds: Optional[float] = None,
        sync_interval_seconds: Optional[float] = None,
    ):
        self.trip = trip
        self.pay_settings = pay_settings
        self.store = store
        self.location_source = location_source
        self.clock = clock or utc_now
        self.fix_timeout_seconds = fix_timeout_seconds or app_settings.location_fix_timeout_seconds
        self.tracker = SegmentTracker(
            trip_id=trip.id,
            store=store,
            snapshots=snapshots,
            location_source=location_source,
            pay_settings=pay_settings,
            clock=self.clock,
            sync_interval_seconds=sync_interval_seconds or app_settings.tracking_sync_interval_seconds,
        )

    # Helpers

    @property
    def trip_id(self) -> int:
        return self.trip.id

    def _pay(self, current_mileage: float, loads: List[Load], night_miles: float) -> float:
        return calculate_pay(current_mileage - self.trip.start_mileage, loads, self.pay_settings, night_miles)

    def _clamp_night(self, night_miles: float, current_mileage: float) -> float:
        return min(max(night_miles, 0.0), max(current_mileage - self.trip.start_mileage, 0.0))

    def _ensure_not_finished(self) -> None:
        if self.trip.is_finished:
            raise TripFinishedError(self.trip.id)

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        """Hold the trip's segment lock with ``self.trip`` re-read under it."""
        async with self.tracker.exclusive() as record:
            if record is None:
                raise ResourceNotFoundError("Trip", self.trip_id)
            self.trip = record
            yield

    async def _commit(self, **fields: Any) -> TripRecord:
        self.trip = await self.store.update(self.trip.id, **fields)
        return self.trip

    async def _commit_loads(self, loads: List[Load]) -> TripRecord:
        return await self._commit(
            loads=loads,
            total_pay=self._pay(self.trip.current_mileage, loads, self.trip.night_miles),
        )

    async def _boundary_fix(self) -> GeoPoint:
        return await acquire_fix(self.location_source, self.fix_timeout_seconds)

    def _targets_load(self, load_id: str) -> bool:
        return self.tracker.is_tracking and self.tracker.target.load_id == load_id

    @staticmethod
    def _validate_stop_count(stop_count: int) -> None:
        if stop_count < 1:
            raise DomainValidationError(
                "A load needs at least one stop",
                details={"stop_count": stop_count},
            )

    # Session lifecycle

    async def open(self) -> bool:
        """
        Prepare the session for use.

        Resumes an in-flight segment, then checks that the stored pay
        matches a recomputation from the current mileage, loads and night
        miles and silently corrects it if not (finished trips keep the pay
        they were closed with).

        Returns:
            True if the stored pay was corrected
        """
        async with self._exclusive():
            if self.trip.is_finished:
                return False
            expected = self._pay(self.trip.current_mileage, self.trip.loads, self.trip.night_miles)
            if abs(expected - self.trip.total_pay) <= app_settings.pay_drift_epsilon:
                return False
            logger.warning(
                "Trip %s: stored pay %.4f differs from recomputed %.4f, correcting",
                self.trip.id, self.trip.total_pay, expected,
            )
            await self._commit(total_pay=expected)
            return True

    # Loads and stops

    async def add_load(self, stop_count: int, load_type: LoadType = LoadType.DRY) -> Load:
        async with self._exclusive():
            self._ensure_not_finished()
            self._validate_stop_count(stop_count)

            load = new_load(stop_count, load_type, self.clock())
            await self._commit_loads(self.trip.loads + [load])
            return load

    async def edit_load(self, load_id: str, new_stop_count: int) -> Load:
        """
        Replace the load's stops with ``new_stop_count`` fresh pending stops.

        Destructive: arrival state of the old stops is discarded. Nothing
        else about the load changes.
        """
        async with self._exclusive():
            self._ensure_not_finished()
            self._validate_stop_count(new_stop_count)
            load = find_load(self.trip.loads, load_id)
            if self._targets_load(load_id):
                raise SegmentStateError(
                    "Cannot edit a load while a segment toward it is being tracked",
                    details={"load_id": load_id},
                )

            updated = load.model_copy(update={"stops": fresh_stops(new_stop_count)})
            await self._commit_loads(replace_load(self.trip.loads, updated))
            return updated

    async def delete_load(self, load_id: str) -> None:
        async with self._exclusive():
            self._ensure_not_finished()
            find_load(self.trip.loads, load_id)
            if self._targets_load(load_id):
                raise SegmentStateError(
                    "Cannot delete a load while a segment toward it is being tracked",
                    details={"load_id": load_id},
                )

            await self._commit_loads([load for load in self.trip.loads if load.id != load_id])

    async def delete_stop(self, load_id: str, stop_id: str) -> Load:
        async with self._exclusive():
            self._ensure_not_finished()
            load = find_load(self.trip.loads, load_id)
            find_stop(load, stop_id)
            if self.tracker.is_tracking and self.tracker.target == StopTarget(load_id=load_id, stop_id=stop_id):
                raise SegmentStateError(
                    "Cannot delete the stop currently being driven to",
                    details={"load_id": load_id, "stop_id": stop_id},
                )

            updated = load.model_copy(update={"stops": [stop for stop in load.stops if stop.id != stop_id]})
            await self._commit_loads(replace_load(self.trip.loads, updated))
            return updated

    async def begin_load(self, load_id: str) -> Load:
        """
        Record where the load was started. Idempotent: once set, no fix is
        requested and nothing is written.
        """
        async with self._exclusive():
            self._ensure_not_finished()
            load = find_load(self.trip.loads, load_id)
            if load.start_location is not None:
                return load

            fix = await self._boundary_fix()
            updated = load.model_copy(update={"start_location": fix})
            await self._commit_loads(replace_load(self.trip.loads, updated))
            return updated

    # Segments

    def _ensure_idle(self) -> None:
        if self.tracker.is_tracking:
            raise SegmentStateError(
                "Another segment is already being tracked. Arrive at it first.",
                details={"active_target": self.tracker.target.model_dump()},
            )

    def _ensure_active(self, target: Target) -> None:
        if not self.tracker.is_tracking:
            raise SegmentStateError("No segment is being tracked")
        if self.tracker.target != target:
            raise SegmentStateError(
                "Arrival does not match the segment being tracked",
                details={
                    "active_target": self.tracker.target.model_dump(),
                    "requested_target": target.model_dump(),
                },
            )

    async def depart_to_stop(self, load_id: str, stop_id: str) -> StopTarget:
        async with self._exclusive():
            self._ensure_not_finished()
            load = find_load(self.trip.loads, load_id)
            find_stop(load, stop_id)
            self._ensure_idle()
            if not can_depart_to_stop(load, stop_id):
                pending = first_pending_stop(load)
                raise StopOrderError(
                    "Stops must be visited in order",
                    details={
                        "load_id": load_id,
                        "stop_id": stop_id,
                        "next_stop_id": pending.id if pending else None,
                        "load_status": load_status(load).value,
                    },
                )

            fix = await self._boundary_fix()
            target = StopTarget(load_id=load_id, stop_id=stop_id)
            self.trip = await self.tracker.start(target, fix)
            return target

    async def depart_to_dc(self, load_id: str) -> DepotTarget:
        async with self._exclusive():
            self._ensure_not_finished()
            load = find_load(self.trip.loads, load_id)
            self._ensure_idle()
            if not can_depart_to_depot(load):
                raise StopOrderError(
                    "Every stop must be arrived at before returning to the depot",
                    details={"load_id": load_id, "load_status": load_status(load).value},
                )

            fix = await self._boundary_fix()
            target = DepotTarget(load_id=load_id)
            self.trip = await self.tracker.start(target, fix)
            return target

    async def record_fix(self, fix: GeoPoint, recorded_at: Optional[datetime] = None) -> float:
        """
        Feed one streamed fix into the active segment.

        The fix goes out on the location stream the tracker is subscribed
        to. Returns the delta in miles.
        """
        self._ensure_not_finished()
        if not self.tracker.is_tracking:
            raise SegmentStateError("No segment is being tracked")
        await self.location_source.push(fix, recorded_at)
        return self.tracker.last_delta

    async def report_location_error(self, reason: str) -> None:
        """Pass a device stream error (signal lost, permission revoked) to the tracker."""
        self._ensure_not_finished()
        if not self.tracker.is_tracking:
            raise SegmentStateError("No segment is being tracked")
        await self.location_source.push_error(
            LocationPermissionError(message="Location stream interrupted", reason=reason)
        )

    async def _fold(self, totals: SegmentTotals, loads: List[Load]) -> TripRecord:
        """Fold segment totals and the updated loads into the trip in one write."""
        current_mileage = self.trip.current_mileage + totals.miles
        night_miles = self._clamp_night(self.trip.night_miles + totals.night_miles, current_mileage)
        await self._commit(
            current_mileage=current_mileage,
            night_miles=night_miles,
            loads=loads,
            total_pay=self._pay(current_mileage, loads, night_miles),
            **cleared_tracking_fields(),
        )
        await self.tracker.reset()
        return self.trip

    async def arrive_at_stop(self, load_id: str, stop_id: str) -> SegmentTotals:
        async with self._exclusive():
            self._ensure_not_finished()
            target = StopTarget(load_id=load_id, stop_id=stop_id)
            self._ensure_active(target)

            fix = await self._boundary_fix()
            totals = await self.tracker.close(fix)

            load = find_load(self.trip.loads, load_id)
            arrived_at = self.clock()
            stops = [
                stop.model_copy(update={"arrived_at": arrived_at, "arrived_location": fix})
                if stop.id == stop_id else stop
                for stop in load.stops
            ]
            updated = load.model_copy(update={"stops": stops})
            await self._fold(totals, replace_load(self.trip.loads, updated))

        logger.info(
            "Trip %s: arrived at stop %s of load %s after %.3f mi (%.3f night)",
            self.trip.id, stop_id, load_id, totals.miles, totals.night_miles,
        )
        return totals

    async def arrive_at_dc(self, load_id: str) -> SegmentTotals:
        async with self._exclusive():
            self._ensure_not_finished()
            target = DepotTarget(load_id=load_id)
            self._ensure_active(target)

            fix = await self._boundary_fix()
            totals = await self.tracker.close(fix)

            load = find_load(self.trip.loads, load_id)
            updated = load.model_copy(update={"finished_at": self.clock(), "finished_location": fix})
            await self._fold(totals, replace_load(self.trip.loads, updated))

        logger.info(
            "Trip %s: load %s back at depot after %.3f mi (%.3f night)",
            self.trip.id, load_id, totals.miles, totals.night_miles,
        )
        return totals

    async def sync(self) -> None:
        """Write the buffered segment to the record store now."""
        async with self._exclusive():
            record = await self.tracker.sync()
            if record is not None:
                self.trip = record

    # Manual odometer

    def _manual_night_share(self, delta: float) -> float:
        """The whole manual delta is night or day, decided once at entry time."""
        if delta > 0 and self.tracker.is_night_at():
            return delta
        return 0.0

    async def update_mileage(self, new_odometer: float) -> TripRecord:
        """
        Manual odometer entry.

        Downward corrections are accepted as long as the reading stays at or
        above the start mileage; night miles are clamped to the new trip
        mileage.
        """
        async with self._exclusive():
            self._ensure_not_finished()
            if new_odometer < self.trip.start_mileage:
                raise DomainValidationError(
                    "Odometer reading cannot be below the trip's start mileage",
                    details={"odometer": new_odometer, "start_mileage": self.trip.start_mileage},
                )
            if self.tracker.is_tracking:
                raise SegmentStateError(
                    "Cannot update mileage while a segment is being tracked",
                    details={"active_target": self.tracker.target.model_dump()},
                )

            delta = new_odometer - self.trip.current_mileage
            night_miles = self._clamp_night(self.trip.night_miles + self._manual_night_share(delta), new_odometer)
            return await self._commit(
                current_mileage=new_odometer,
                night_miles=night_miles,
                total_pay=self._pay(new_odometer, self.trip.loads, night_miles),
            )

    async def finish_trip(self, final_odometer: Optional[float] = None) -> TripRecord:
        """
        Close the trip.

        An active segment is folded in first. An explicit final odometer
        wins over the tracked mileage; a disagreement of more than
        ``finish_discrepancy_miles`` is logged, not reconciled.
        """
        async with self._exclusive():
            self._ensure_not_finished()
            if final_odometer is not None and final_odometer < self.trip.start_mileage:
                raise DomainValidationError(
                    "Final odometer cannot be below the trip's start mileage",
                    details={"odometer": final_odometer, "start_mileage": self.trip.start_mileage},
                )

            tracked_mileage = self.trip.current_mileage
            night_miles = self.trip.night_miles
            tracking_fields = {}
            if self.tracker.is_tracking:
                totals = await self.tracker.close()
                tracked_mileage += totals.miles
                night_miles += totals.night_miles
                tracking_fields = cleared_tracking_fields()

            end_mileage = tracked_mileage
            if final_odometer is not None:
                if abs(final_odometer - tracked_mileage) > app_settings.finish_discrepancy_miles:
                    logger.warning(
                        "Trip %s: final odometer %.1f differs from tracked mileage %.1f",
                        self.trip.id, final_odometer, tracked_mileage,
                    )
                night_miles += self._manual_night_share(final_odometer - tracked_mileage)
                end_mileage = final_odometer

            night_miles = self._clamp_night(night_miles, end_mileage)
            await self._commit(
                current_mileage=end_mileage,
                end_mileage=end_mileage,
                night_miles=night_miles,
                total_pay=self._pay(end_mileage, self.trip.loads, night_miles),
                is_finished=True,
                finished_at=self.clock(),
                **tracking_fields,
            )
            if tracking_fields:
                await self.tracker.reset()

        logger.info("Trip %s finished at %.1f with pay %.2f", self.trip.id, end_mileage, self.trip.total_pay)
        return self.trip

    # Read models

    def pay_breakdown(self) -> PayBreakdown:
        return pay_breakdown(self.trip.trip_miles, self.trip.loads, self.pay_settings, self.trip.night_miles)

    def segment_status(self) -> SegmentStatusResponse:
        """Live segment state and the pay the trip would show if the segment were folded now."""
        projected_mileage = self.trip.current_mileage + self.tracker.miles_buffer
        projected_night = self._clamp_night(
            self.trip.night_miles + self.tracker.night_miles_buffer, projected_mileage
        )
        return SegmentStatusResponse(
            trip_id=self.trip.id,
            state=self.tracker.state,
            target=self.tracker.target,
            tracking_miles_buffer=self.tracker.miles_buffer,
            tracking_night_miles_buffer=self.tracker.night_miles_buffer,
            last_location=self.tracker.last_location,
            is_night_now=self.tracker.is_night_at(),
            projected_trip_miles=projected_mileage - self.trip.start_mileage,
            projected_night_miles=projected_night,
            projected_pay=self._pay(projected_mileage, self.trip.loads, projected_night),
        )
