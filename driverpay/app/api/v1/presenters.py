"""
Response builders for trip endpoints.

Derived fields (load status, next eligible stop, pay breakdown) are
computed here from the stored record; they are never persisted.
"""

from driverpay.app.domain.pay.pay_calculator import current_pay, pay_breakdown
from driverpay.app.domain.trips.load_state import can_depart_to_depot, first_pending_stop, load_status
from driverpay.app.models.trip_enums import StopStatus
from driverpay.app.schemas.pay import PaySettingsSchema
from driverpay.app.schemas.trip import (
    Load, LoadResponse, StopResponse, TripRecord, TripResponse, TripSummary
)


def load_response(load: Load) -> LoadResponse:
    pending = first_pending_stop(load)
    return LoadResponse(
        id=load.id,
        load_type=load.load_type,
        created_at=load.created_at,
        status=load_status(load),
        active_stop_id=pending.id if pending else None,
        can_depart_to_depot=can_depart_to_depot(load),
        stops=[
            StopResponse(
                **stop.model_dump(),
                status=StopStatus.PENDING if stop.is_pending else StopStatus.ARRIVED,
            )
            for stop in load.stops
        ],
        start_location=load.start_location,
        finished_at=load.finished_at,
        finished_location=load.finished_location,
    )


def trip_response(trip: TripRecord, pay_settings: PaySettingsSchema) -> TripResponse:
    return TripResponse(
        id=trip.id,
        user_id=trip.user_id,
        start_mileage=trip.start_mileage,
        current_mileage=trip.current_mileage,
        end_mileage=trip.end_mileage,
        trip_miles=trip.trip_miles,
        night_miles=trip.night_miles,
        total_pay=trip.total_pay,
        pay=pay_breakdown(trip.trip_miles, trip.loads, pay_settings, trip.night_miles),
        is_finished=trip.is_finished,
        finished_at=trip.finished_at,
        tracking_active=trip.tracking_active,
        loads=[load_response(load) for load in trip.loads],
        created_at=trip.created_at,
        updated_at=trip.updated_at,
    )


def trip_summary(trip: TripRecord, pay_settings: PaySettingsSchema) -> TripSummary:
    return TripSummary(
        id=trip.id,
        start_mileage=trip.start_mileage,
        current_mileage=trip.current_mileage,
        trip_miles=trip.trip_miles,
        load_count=len(trip.loads),
        total_pay=current_pay(trip, pay_settings),
        is_finished=trip.is_finished,
        created_at=trip.created_at,
        finished_at=trip.finished_at,
    )
