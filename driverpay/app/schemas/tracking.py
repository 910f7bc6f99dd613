"""
Live tracking schemas.

Location fixes reported by the driver's device, the segment target
variant, the crash-recovery snapshot and the tracker status response.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Annotated, Literal, Optional, Tuple, Union

from driverpay.app.models.trip_enums import DEPOT_STOP_ID, TrackingState
from driverpay.app.schemas.trip import GeoPoint, TripResponse


class StopTarget(BaseModel):
    """Segment driving toward a stop."""
    kind: Literal["stop"] = "stop"
    load_id: str
    stop_id: str

    class Config:
        frozen = True


class DepotTarget(BaseModel):
    """Segment driving back to the depot (DC) after a load's last stop."""
    kind: Literal["depot"] = "depot"
    load_id: str

    class Config:
        frozen = True


SegmentTarget = Annotated[Union[StopTarget, DepotTarget], Field(discriminator="kind")]


def encode_target(target: Union[StopTarget, DepotTarget]) -> Tuple[str, str]:
    """Persisted (load_id, stop_id) pair for a target."""
    if isinstance(target, DepotTarget):
        return target.load_id, DEPOT_STOP_ID
    return target.load_id, target.stop_id


def decode_target(load_id: Optional[str], stop_id: Optional[str]) -> Optional[Union[StopTarget, DepotTarget]]:
    """Inverse of ``encode_target``; None when no target is stored."""
    if not load_id or not stop_id:
        return None
    if stop_id == DEPOT_STOP_ID:
        return DepotTarget(load_id=load_id)
    return StopTarget(load_id=load_id, stop_id=stop_id)


class LocationRecord(BaseModel):
    """Schema for one GPS fix reported by the device."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy_meters: Optional[float] = Field(None, gt=0)
    recorded_at: Optional[datetime] = Field(None, description="Device clock at the fix, with UTC offset")

    def to_point(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lng=self.longitude)


class BoundaryFixRequest(BaseModel):
    """
    Body of begin/depart/arrive calls.

    The device either supplies the one-shot fix or reports why it could not
    (for example ``PERMISSION_DENIED`` or ``TIMEOUT``).
    """
    location: Optional[LocationRecord] = None
    location_error: Optional[str] = Field(None, max_length=100)


class SegmentSnapshot(BaseModel):
    """Crash-recovery copy of an in-flight segment."""
    trip_id: int
    active_load_id: str
    active_stop_id: str
    tracking_miles_buffer: float = 0.0
    tracking_night_miles_buffer: float = 0.0
    last_coords: Optional[GeoPoint] = None
    updated_at: datetime
    sequence: int = Field(0, description="Bumped on every save; a higher value is newer state")


class SegmentStatusResponse(BaseModel):
    """Live segment status with the pay the trip would show if it ended now."""
    trip_id: int
    state: TrackingState
    target: Optional[SegmentTarget] = None
    tracking_miles_buffer: float
    tracking_night_miles_buffer: float
    last_location: Optional[GeoPoint]
    is_night_now: bool
    projected_trip_miles: float
    projected_night_miles: float
    projected_pay: float


class LocationErrorReport(BaseModel):
    """Schema for an error from the device's location stream (signal lost, permission revoked)."""
    error: str = Field(..., min_length=1, max_length=100)


class LocationRecordResponse(BaseModel):
    """Response after feeding a fix to the tracker."""
    trip_id: int
    delta_miles: float
    tracking_miles_buffer: float
    tracking_night_miles_buffer: float


class SegmentArrivalResponse(BaseModel):
    """Response after arriving at a stop or back at the depot."""
    target: SegmentTarget
    segment_miles: float
    segment_night_miles: float
    trip: TripResponse
