"""
Weekly earnings.

Pay weeks run Friday 00:00 through Thursday 23:59:59.999 on the driver's
clock. A trip counts toward the week it was created in.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from driverpay.app.domain.pay.pay_calculator import current_pay
from driverpay.app.schemas.pay import PaySettingsSchema, WeeklyEarningsResponse
from driverpay.app.schemas.trip import TripRecord

FRIDAY = 4  # datetime.weekday()


def week_bounds(as_of: datetime, tz_name: str = "UTC") -> Tuple[datetime, datetime]:
    """
    Start and end of the pay week containing ``as_of``.

    Naive ``as_of`` values are read as UTC. Both bounds are aware and in
    the driver's zone.
    """
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)
    local = as_of.astimezone(ZoneInfo(tz_name))

    days_back = (local.weekday() - FRIDAY) % 7
    start = (local - timedelta(days=days_back)).replace(hour=0, minute=0, second=0, microsecond=0)
    end = (start + timedelta(days=6)).replace(hour=23, minute=59, second=59, microsecond=999000)
    return start, end


def weekly_earnings(
    trips: Sequence[TripRecord],
    pay_settings: PaySettingsSchema,
    as_of: Optional[datetime] = None,
) -> WeeklyEarningsResponse:
    """
    Sum pay and mileage of the trips created in the pay week containing ``as_of``.

    Open trips count at their pay under the current rates.
    """
    start, end = week_bounds(as_of or datetime.now(timezone.utc), pay_settings.timezone)

    in_week = [
        trip for trip in trips
        if trip.created_at is not None and start <= trip.created_at <= end
    ]
    return WeeklyEarningsResponse(
        week_start=start,
        week_end=end,
        trip_count=len(in_week),
        total_miles=sum(trip.trip_miles for trip in in_week),
        total_pay=sum(current_pay(trip, pay_settings) for trip in in_week),
    )
