"""
Pay Calculator (Domain Logic).

Computes trip pay from mileage, loads and the driver's rate rules.
Pure functions: no I/O, no rounding. Rounding happens only when the
amount is displayed.
"""

from typing import Sequence

from driverpay.app.schemas.pay import PayBreakdown, PaySettingsSchema
from driverpay.app.schemas.trip import Load, TripRecord


def pay_breakdown(
    trip_mileage: float,
    loads: Sequence[Load],
    settings: PaySettingsSchema,
    night_miles: float = 0.0,
) -> PayBreakdown:
    """
    Break trip pay into its components.

    Flow:
    1. Night bonus applies only when night pay is enabled
    2. Night miles are clamped into [0, trip_mileage]
    3. Day miles = trip mileage - night miles
    4. Mileage pay: day at cpm, night at cpm + night bonus
    5. Loads pay: one payPerLoad per load
    6. Stops pay: one payPerStop per stop across all loads
    """
    effective_night_extra = settings.night_extra_cpm if settings.night_pay_enabled else 0.0

    night_capped = min(max(night_miles, 0.0), max(trip_mileage, 0.0))
    day_miles = trip_mileage - night_capped

    day_pay = day_miles * settings.cpm
    night_pay = night_capped * (settings.cpm + effective_night_extra)
    loads_pay = len(loads) * settings.pay_per_load
    stops_pay = sum(len(load.stops) for load in loads) * settings.pay_per_stop

    return PayBreakdown(
        day_miles=day_miles,
        night_miles=night_capped,
        day_pay=day_pay,
        night_pay=night_pay,
        loads_pay=loads_pay,
        stops_pay=stops_pay,
        total=day_pay + night_pay + loads_pay + stops_pay,
    )


def calculate_pay(
    trip_mileage: float,
    loads: Sequence[Load],
    settings: PaySettingsSchema,
    night_miles: float = 0.0,
) -> float:
    """
    Total pay for a trip.

    Must be recomputed and stored as ``total_pay`` after every change to
    mileage, loads, stops or night mileage.
    """
    return pay_breakdown(trip_mileage, loads, settings, night_miles).total


def current_pay(trip: TripRecord, settings: PaySettingsSchema) -> float:
    """
    Pay a trip is worth under the driver's current rates.

    Finished trips keep the pay they were closed with; open trips are
    recomputed so listings agree with the trip view after a rate change.
    """
    if trip.is_finished:
        return trip.total_pay
    return calculate_pay(trip.trip_miles, trip.loads, settings, trip.night_miles)
