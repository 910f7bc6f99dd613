"""
Driver Load & Stop API Endpoints.

Drivers add, edit and remove loads and stops, begin loads and drive the
legs between stops. Depart and arrive calls carry the device's one-shot
location fix, or the reason it could not get one.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from driverpay.app.db.session import get_db
from driverpay.app.core.dependencies import get_current_user
from driverpay.app.core.redis_client import get_redis
from driverpay.app.api.v1.presenters import load_response, trip_response
from driverpay.app.domain.tracking.location_source import ReportedLocationSource
from driverpay.app.schemas.tracking import (
    BoundaryFixRequest, SegmentArrivalResponse, SegmentStatusResponse
)
from driverpay.app.schemas.trip import LoadCreate, LoadResponse, LoadUpdate, TripResponse
from driverpay.app.services.audit import AuditAction, log_event
from driverpay.app.services.session_factory import open_trip_session

router = APIRouter(prefix="/trips/{trip_id}/loads", tags=["Driver - Loads & Stops"])


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def add_load(
    payload: LoadCreate,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """Add a load with ``stop_count`` pending stops."""
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    load = await session.add_load(payload.stop_count, payload.load_type)

    await log_event(
        db=db,
        action=AuditAction.LOAD_ADDED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={"load_id": load.id, "stop_count": payload.stop_count, "load_type": payload.load_type.value}
    )

    return trip_response(session.trip, session.pay_settings)


@router.patch("/{load_id}", response_model=TripResponse)
async def edit_load(
    payload: LoadUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Change a load's number of stops.

    Destructive: every stop is replaced by a fresh pending one, so earlier
    arrivals on this load are lost. Clients should confirm with the driver
    before calling this.
    """
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    await session.edit_load(load_id, payload.stop_count)

    await log_event(
        db=db,
        action=AuditAction.LOAD_EDITED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={"load_id": load_id, "stop_count": payload.stop_count}
    )

    return trip_response(session.trip, session.pay_settings)


@router.delete("/{load_id}", response_model=TripResponse)
async def delete_load(
    trip_id: int = Path(..., description="Trip ID"),
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """Remove a load and its stops."""
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    await session.delete_load(load_id)

    await log_event(
        db=db,
        action=AuditAction.LOAD_DELETED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={"load_id": load_id}
    )

    return trip_response(session.trip, session.pay_settings)


@router.delete("/{load_id}/stops/{stop_id}", response_model=TripResponse)
async def delete_stop(
    trip_id: int = Path(..., description="Trip ID"),
    load_id: str = Path(..., description="Load ID"),
    stop_id: str = Path(..., description="Stop ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """Remove one stop from a load."""
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    await session.delete_stop(load_id, stop_id)

    await log_event(
        db=db,
        action=AuditAction.STOP_DELETED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={"load_id": load_id, "stop_id": stop_id}
    )

    return trip_response(session.trip, session.pay_settings)


@router.post("/{load_id}/begin", response_model=LoadResponse)
async def begin_load(
    payload: Optional[BoundaryFixRequest] = None,
    trip_id: int = Path(..., description="Trip ID"),
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Begin a load at the driver's current location.

    Idempotent: a load that was already begun keeps its start location
    and no fix is needed.
    """
    session = await open_trip_session(
        db, redis_client, trip_id, current_user,
        location_source=ReportedLocationSource.from_request(payload)
    )
    already_begun = any(
        load.id == load_id and load.start_location is not None for load in session.trip.loads
    )
    load = await session.begin_load(load_id)

    if not already_begun:
        await log_event(
            db=db,
            action=AuditAction.LOAD_BEGUN,
            actor_id=current_user["user_id"],
            trip_id=trip_id,
            metadata={"load_id": load_id, "start_location": load.start_location.model_dump()}
        )

    return load_response(load)


@router.post("/{load_id}/stops/{stop_id}/depart", response_model=SegmentStatusResponse)
async def depart_to_stop(
    payload: Optional[BoundaryFixRequest] = None,
    trip_id: int = Path(..., description="Trip ID"),
    load_id: str = Path(..., description="Load ID"),
    stop_id: str = Path(..., description="Stop ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Start driving toward a stop (Driver only).

    Validates:
    - Trip is not finished
    - Stop is the load's first pending stop
    - No other segment is being tracked
    - A location fix is available
    """
    session = await open_trip_session(
        db, redis_client, trip_id, current_user,
        location_source=ReportedLocationSource.from_request(payload)
    )
    await session.depart_to_stop(load_id, stop_id)

    await log_event(
        db=db,
        action=AuditAction.SEGMENT_STARTED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={"load_id": load_id, "stop_id": stop_id}
    )

    return session.segment_status()


@router.post("/{load_id}/stops/{stop_id}/arrive", response_model=SegmentArrivalResponse)
async def arrive_at_stop(
    payload: Optional[BoundaryFixRequest] = None,
    trip_id: int = Path(..., description="Trip ID"),
    load_id: str = Path(..., description="Load ID"),
    stop_id: str = Path(..., description="Stop ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Arrive at the stop being driven to.

    The segment's miles are folded into the trip and pay is recomputed.
    """
    session = await open_trip_session(
        db, redis_client, trip_id, current_user,
        location_source=ReportedLocationSource.from_request(payload)
    )
    totals = await session.arrive_at_stop(load_id, stop_id)

    await log_event(
        db=db,
        action=AuditAction.STOP_ARRIVED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={
            "load_id": load_id,
            "stop_id": stop_id,
            "segment_miles": totals.miles,
            "segment_night_miles": totals.night_miles
        }
    )

    return SegmentArrivalResponse(
        target=totals.target,
        segment_miles=totals.miles,
        segment_night_miles=totals.night_miles,
        trip=trip_response(session.trip, session.pay_settings)
    )


@router.post("/{load_id}/depot/depart", response_model=SegmentStatusResponse)
async def depart_to_depot(
    payload: Optional[BoundaryFixRequest] = None,
    trip_id: int = Path(..., description="Trip ID"),
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Start driving back to the depot.

    Only allowed once every stop of the load has been arrived at.
    """
    session = await open_trip_session(
        db, redis_client, trip_id, current_user,
        location_source=ReportedLocationSource.from_request(payload)
    )
    await session.depart_to_dc(load_id)

    await log_event(
        db=db,
        action=AuditAction.SEGMENT_STARTED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={"load_id": load_id, "stop_id": "depot"}
    )

    return session.segment_status()


@router.post("/{load_id}/depot/arrive", response_model=SegmentArrivalResponse)
async def arrive_at_depot(
    payload: Optional[BoundaryFixRequest] = None,
    trip_id: int = Path(..., description="Trip ID"),
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """Arrive back at the depot, finishing the load."""
    session = await open_trip_session(
        db, redis_client, trip_id, current_user,
        location_source=ReportedLocationSource.from_request(payload)
    )
    totals = await session.arrive_at_dc(load_id)

    await log_event(
        db=db,
        action=AuditAction.DEPOT_ARRIVED,
        actor_id=current_user["user_id"],
        trip_id=trip_id,
        metadata={
            "load_id": load_id,
            "segment_miles": totals.miles,
            "segment_night_miles": totals.night_miles
        }
    )

    return SegmentArrivalResponse(
        target=totals.target,
        segment_miles=totals.miles,
        segment_night_miles=totals.night_miles,
        trip=trip_response(session.trip, session.pay_settings)
    )
