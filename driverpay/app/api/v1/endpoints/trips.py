"""
Driver Trip API Endpoints.

Drivers start trips, correct the odometer, finish trips and review their
earnings. Load, stop and live-tracking actions live in their own routers.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from driverpay.app.db.session import get_db
from driverpay.app.core.dependencies import get_current_user
from driverpay.app.core.exceptions import ResourceNotFoundError
from driverpay.app.core.guards import ownership_guard
from driverpay.app.core.redis_client import get_redis
from driverpay.app.api.v1.presenters import trip_response, trip_summary
from driverpay.app.schemas.audit import AuditLogResponse, AuditTrailResponse
from driverpay.app.schemas.pay import WeeklyEarningsResponse
from driverpay.app.schemas.trip import (
    MileageUpdate, TripCreate, TripCreateResponse, TripFinish, TripListResponse, TripResponse
)
from driverpay.app.services.audit import AuditAction, get_trip_audit_trail, log_event
from driverpay.app.services.earnings import weekly_earnings
from driverpay.app.services.session_factory import open_trip_session
from driverpay.app.services.settings_store import SettingsStore
from driverpay.app.services.snapshot_store import SegmentSnapshotStore
from driverpay.app.services.trip_store import TripStore

router = APIRouter(prefix="/trips", tags=["Driver - Trips"])


@router.post("", response_model=TripCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    payload: TripCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Start a new trip at the given odometer reading.

    The trip starts with no loads, zero trip miles and zero pay.
    """
    user_id = current_user["user_id"]
    store = TripStore(db)

    trip_id = await store.create(user_id, payload.start_mileage)
    trip = await store.get(trip_id)

    await log_event(
        db=db,
        action=AuditAction.TRIP_CREATED,
        actor_id=user_id,
        trip_id=trip_id,
        metadata={"start_mileage": payload.start_mileage}
    )

    pay_settings = await SettingsStore(db).get_or_default(user_id)
    return TripCreateResponse(trip=trip_response(trip, pay_settings))


@router.get("", response_model=TripListResponse)
async def list_trips(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List the current driver's trips, newest first.

    Open trips are listed at their pay under the current rates.
    """
    user_id = current_user["user_id"]
    trips = await TripStore(db).list_by_user(user_id)
    pay_settings = await SettingsStore(db).get_or_default(user_id)
    return TripListResponse(
        trips=[trip_summary(trip, pay_settings) for trip in trips],
        total=len(trips)
    )


@router.get("/summary/weekly", response_model=WeeklyEarningsResponse)
async def get_weekly_earnings(
    as_of: Optional[datetime] = Query(None, description="Any instant inside the wanted pay week (default: now)"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Earnings for one pay week.

    Pay weeks start Friday 00:00 on the driver's clock and include every
    trip created before the following Friday.
    """
    user_id = current_user["user_id"]
    trips = await TripStore(db).list_by_user(user_id)
    pay_settings = await SettingsStore(db).get_or_default(user_id)
    return weekly_earnings(trips, pay_settings, as_of)


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Get one trip with its loads, stops and pay breakdown.

    Opening the trip corrects a stored pay that no longer matches its
    mileage and loads.
    """
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    return trip_response(session.trip, session.pay_settings)


@router.delete("/{trip_id}")
async def delete_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """Delete a trip and any in-flight segment snapshot."""
    store = TripStore(db)
    trip = await store.get(trip_id)
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)
    ownership_guard.enforce(trip.user_id, current_user, "trip")

    await store.delete(trip_id)
    await SegmentSnapshotStore(redis_client).clear(trip_id)

    await log_event(
        db=db,
        action=AuditAction.TRIP_DELETED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={"total_pay": trip.total_pay, "is_finished": trip.is_finished}
    )

    return {"message": "Trip deleted", "trip_id": trip_id}


@router.get("/{trip_id}/history", response_model=AuditTrailResponse)
async def get_trip_history(
    trip_id: int = Path(..., description="Trip ID"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail of a trip, newest first."""
    trip = await TripStore(db).get(trip_id)
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)
    ownership_guard.enforce(trip.user_id, current_user, "trip")

    logs = await get_trip_audit_trail(db, trip_id, limit=limit)
    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )


@router.post("/{trip_id}/mileage", response_model=TripResponse)
async def update_mileage(
    payload: MileageUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Enter the odometer manually.

    Validates:
    - Trip is not finished
    - Reading is not below the start mileage
    - No segment is being tracked

    The whole change since the last reading is counted as night miles if
    it is entered inside the night window, day miles otherwise.
    """
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    previous = session.trip.current_mileage
    trip = await session.update_mileage(payload.odometer)

    await log_event(
        db=db,
        action=AuditAction.MILEAGE_UPDATED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={"previous_mileage": previous, "current_mileage": trip.current_mileage}
    )

    return trip_response(trip, session.pay_settings)


@router.post("/{trip_id}/finish", response_model=TripResponse)
async def finish_trip(
    payload: TripFinish,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Finish a trip.

    Miles of a segment still being tracked are folded in first. A final
    odometer, when given, replaces the tracked mileage. After this the
    trip is read-only.
    """
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    trip = await session.finish_trip(payload.final_odometer)

    await log_event(
        db=db,
        action=AuditAction.TRIP_FINISHED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={"end_mileage": trip.end_mileage, "total_pay": trip.total_pay}
    )

    return trip_response(trip, session.pay_settings)
