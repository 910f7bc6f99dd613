"""
Live Tracking API Endpoints.

While a segment is open the driver's device streams GPS fixes here. Each
fix extends the segment's buffered distance; the buffers are folded into
the trip only on arrival.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from driverpay.app.db.session import get_db
from driverpay.app.core.dependencies import get_current_user
from driverpay.app.core.redis_client import get_redis
from driverpay.app.schemas.tracking import (
    LocationErrorReport, LocationRecord, LocationRecordResponse, SegmentStatusResponse
)
from driverpay.app.services.session_factory import open_trip_session

router = APIRouter(prefix="/trips/{trip_id}", tags=["Driver - Live Tracking"])


@router.post("/location", response_model=LocationRecordResponse)
async def record_location(
    location: LocationRecord,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Record one GPS fix for the segment being driven.

    Rejected with 409 when no segment is being tracked.
    """
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    delta = await session.record_fix(location.to_point(), location.recorded_at)

    return LocationRecordResponse(
        trip_id=trip_id,
        delta_miles=delta,
        tracking_miles_buffer=session.tracker.miles_buffer,
        tracking_night_miles_buffer=session.tracker.night_miles_buffer
    )


@router.post("/location/error", response_model=SegmentStatusResponse)
async def report_location_error(
    report: LocationErrorReport,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Report that the device lost its location stream.

    The segment keeps its buffered distance and continues with the next
    fix. Rejected with 409 when no segment is being tracked.
    """
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    await session.report_location_error(report.error)
    return session.segment_status()


@router.post("/tracking/sync", response_model=SegmentStatusResponse)
async def sync_tracking(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Write the buffered segment to the trip record now.

    Called by the device when the app goes to the background.
    """
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    await session.sync()
    return session.segment_status()


@router.get("/tracking", response_model=SegmentStatusResponse)
async def get_tracking_status(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Live segment status.

    Includes the trip miles, night miles and pay the trip would show if
    the driver arrived right now.
    """
    session = await open_trip_session(db, redis_client, trip_id, current_user)
    return session.segment_status()
