"""
Pay schemas: rate settings, pay breakdowns and earnings summaries.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class PaySettingsSchema(BaseModel):
    """Rate rules for one driver. Also the request body of ``PUT /settings``."""
    cpm: float = Field(0.0, ge=0, description="Dollars per mile")
    pay_per_load: float = Field(0.0, ge=0)
    pay_per_stop: float = Field(0.0, ge=0)
    night_pay_enabled: bool = False
    night_start_minutes: int = Field(1140, ge=0, le=1439, description="Minutes since midnight")
    night_end_minutes: int = Field(180, ge=0, le=1439, description="Minutes since midnight")
    night_extra_cpm: float = Field(0.0, ge=0, description="Extra dollars per mile inside the night window")
    timezone: str = Field("UTC", description="IANA zone of the driver's clock")

    class Config:
        from_attributes = True

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value


class PaySettingsResponse(PaySettingsSchema):
    user_id: str
    updated_at: Optional[datetime] = None


class PayBreakdown(BaseModel):
    """Components of a trip's pay. ``total`` is their unrounded sum."""
    day_miles: float
    night_miles: float
    day_pay: float
    night_pay: float
    loads_pay: float
    stops_pay: float
    total: float


class WeeklyEarningsResponse(BaseModel):
    """Earnings for the pay week (Friday through Thursday) containing ``as_of``."""
    week_start: datetime
    week_end: datetime
    trip_count: int
    total_miles: float
    total_pay: float
