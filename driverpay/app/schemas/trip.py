"""
Trip schemas.

Record shapes for trips, loads and stops as the record store holds them,
plus the request and response bodies of the trip endpoints.
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime, timezone

from driverpay.app.models.trip_enums import LoadType, LoadStatus, StopStatus
from driverpay.app.schemas.pay import PayBreakdown


class GeoPoint(BaseModel):
    """A latitude/longitude pair in degrees."""
    lat: float
    lng: float


class Stop(BaseModel):
    """A stop inside a load. Pending until ``arrived_at`` is set."""
    id: str
    name: Optional[str] = None
    arrived_at: Optional[datetime] = None
    arrived_location: Optional[GeoPoint] = None

    @property
    def is_pending(self) -> bool:
        return self.arrived_at is None


class Load(BaseModel):
    """A load with its ordered stops."""
    id: str
    stops: List[Stop] = []
    load_type: LoadType = LoadType.DRY
    created_at: datetime
    start_location: Optional[GeoPoint] = None
    finished_at: Optional[datetime] = None
    finished_location: Optional[GeoPoint] = None


class TripRecord(BaseModel):
    """Full trip record as read from the record store."""
    id: int
    user_id: str
    start_mileage: float
    current_mileage: float
    end_mileage: Optional[float] = None
    night_miles: float = 0.0
    loads: List[Load] = []
    total_pay: float = 0.0
    is_finished: bool = False
    finished_at: Optional[datetime] = None
    tracking_active: bool = False
    tracking_load_id: Optional[str] = None
    tracking_stop_id: Optional[str] = None
    tracking_miles_buffer: float = 0.0
    tracking_night_miles_buffer: float = 0.0
    tracking_last_location: Optional[GeoPoint] = None
    tracking_updated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("finished_at", "tracking_updated_at", "created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands back naive timestamps
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def trip_miles(self) -> float:
        return self.current_mileage - self.start_mileage


class TripCreate(BaseModel):
    """Schema for starting a new trip."""
    start_mileage: float = Field(..., ge=0, description="Odometer reading at trip start")


class LoadCreate(BaseModel):
    """Schema for adding a load."""
    stop_count: int = Field(..., description="Number of stops on the load (>= 1)")
    load_type: LoadType = LoadType.DRY


class LoadUpdate(BaseModel):
    """Schema for editing a load. Replaces every stop with fresh pending ones."""
    stop_count: int = Field(..., description="New number of stops (>= 1)")


class MileageUpdate(BaseModel):
    """Schema for a manual odometer entry."""
    odometer: float = Field(..., description="Current odometer reading")


class TripFinish(BaseModel):
    """Schema for finishing a trip. Omit the odometer to keep the tracked mileage."""
    final_odometer: Optional[float] = None


class StopResponse(Stop):
    """Stop with its derived status."""
    status: StopStatus


class LoadResponse(BaseModel):
    """Load with derived status and the stop currently eligible for departure."""
    id: str
    load_type: LoadType
    created_at: datetime
    status: LoadStatus
    active_stop_id: Optional[str]
    can_depart_to_depot: bool
    stops: List[StopResponse]
    start_location: Optional[GeoPoint]
    finished_at: Optional[datetime]
    finished_location: Optional[GeoPoint]


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    user_id: str
    start_mileage: float
    current_mileage: float
    end_mileage: Optional[float]
    trip_miles: float
    night_miles: float
    total_pay: float
    pay: PayBreakdown
    is_finished: bool
    finished_at: Optional[datetime]
    tracking_active: bool
    loads: List[LoadResponse] = []
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class TripSummary(BaseModel):
    """Compact trip entry for listings."""
    id: int
    start_mileage: float
    current_mileage: float
    trip_miles: float
    load_count: int
    total_pay: float
    is_finished: bool
    created_at: Optional[datetime]
    finished_at: Optional[datetime]


class TripListResponse(BaseModel):
    """Schema for a driver's trip list."""
    trips: List[TripSummary]
    total: int


class TripCreateResponse(BaseModel):
    """Response after trip creation."""
    trip: TripResponse
