"""
Trip session factory.

Builds a ``TripSession`` for one request: loads the trip and the driver's
pay settings, checks ownership, heals pay drift and resumes any in-flight
segment.
"""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from driverpay.app.core.exceptions import ResourceNotFoundError
from driverpay.app.core.guards import ownership_guard
from driverpay.app.domain.tracking.location_source import LocationSource, ReportedLocationSource
from driverpay.app.domain.trips.trip_session import TripSession
from driverpay.app.services.audit import AuditAction, log_event
from driverpay.app.services.settings_store import SettingsStore
from driverpay.app.services.snapshot_store import SegmentSnapshotStore
from driverpay.app.services.trip_store import TripStore


async def open_trip_session(
    db: AsyncSession,
    redis_client,
    trip_id: int,
    current_user: dict,
    location_source: Optional[LocationSource] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> TripSession:
    """
    Open the trip for the current user.

    Raises:
        ResourceNotFoundError: no such trip
        InsufficientPermissionsError: trip belongs to someone else
    """
    store = TripStore(db)
    trip = await store.get(trip_id)
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)

    ownership_guard.enforce(trip.user_id, current_user, resource_name="trip")

    pay_settings = await SettingsStore(db).get_or_default(trip.user_id)
    session = TripSession(
        trip=trip,
        pay_settings=pay_settings,
        store=store,
        snapshots=SegmentSnapshotStore(redis_client),
        location_source=location_source or ReportedLocationSource(),
        clock=clock,
    )

    stored_pay = trip.total_pay
    if await session.open():
        await log_event(
            db=db,
            action=AuditAction.PAY_RECONCILED,
            actor_id=None,
            trip_id=trip_id,
            metadata={"stored_pay": stored_pay, "corrected_pay": session.trip.total_pay},
        )

    return session
