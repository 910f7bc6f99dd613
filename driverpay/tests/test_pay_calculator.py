"""
Tests for the pay calculator.
"""

from datetime import datetime, timezone

import pytest

from driverpay.app.domain.pay.pay_calculator import calculate_pay, pay_breakdown
from driverpay.app.domain.trips.load_state import new_load
from driverpay.app.models.trip_enums import LoadType
from driverpay.app.schemas.pay import PaySettingsSchema

CREATED = datetime(2024, 5, 15, tzinfo=timezone.utc)


def test_night_miles_are_capped_at_trip_mileage():
    settings = PaySettingsSchema(cpm=1.0, night_pay_enabled=True, night_extra_cpm=0.1)
    capped = calculate_pay(10, [], settings, night_miles=50)
    assert capped == pytest.approx(11.0)
    assert capped == calculate_pay(10, [], settings, night_miles=10)


def test_negative_night_miles_count_as_zero():
    settings = PaySettingsSchema(cpm=1.0, night_pay_enabled=True, night_extra_cpm=0.5)
    assert calculate_pay(10, [], settings, night_miles=-3) == pytest.approx(10.0)


def test_components_add_up():
    settings = PaySettingsSchema(cpm=1.0, pay_per_load=50.0, pay_per_stop=10.0)
    loads = [new_load(2, LoadType.DRY, CREATED)]

    assert calculate_pay(100, loads, settings) == pytest.approx(170.0)

    breakdown = pay_breakdown(100, loads, settings)
    assert breakdown.day_pay == pytest.approx(100.0)
    assert breakdown.night_pay == 0
    assert breakdown.loads_pay == pytest.approx(50.0)
    assert breakdown.stops_pay == pytest.approx(20.0)
    assert breakdown.total == pytest.approx(
        breakdown.day_pay + breakdown.night_pay + breakdown.loads_pay + breakdown.stops_pay
    )


def test_night_bonus_ignored_when_disabled():
    settings = PaySettingsSchema(cpm=0.5, night_pay_enabled=False, night_extra_cpm=0.25)
    assert calculate_pay(40, [], settings, night_miles=40) == pytest.approx(20.0)


def test_night_bonus_applies_to_night_share_only():
    settings = PaySettingsSchema(cpm=0.5, night_pay_enabled=True, night_extra_cpm=0.25)
    breakdown = pay_breakdown(40, [], settings, night_miles=10)
    assert breakdown.day_miles == pytest.approx(30)
    assert breakdown.night_miles == pytest.approx(10)
    assert breakdown.day_pay == pytest.approx(15.0)
    assert breakdown.night_pay == pytest.approx(7.5)
    assert breakdown.total == pytest.approx(22.5)


def test_every_stop_is_paid_arrived_or_not():
    settings = PaySettingsSchema(pay_per_stop=5.0)
    load = new_load(3, LoadType.WET, CREATED)
    arrived = load.model_copy(update={
        "stops": [load.stops[0].model_copy(update={"arrived_at": CREATED})] + load.stops[1:]
    })
    assert calculate_pay(0, [arrived], settings) == calculate_pay(0, [load], settings) == pytest.approx(15.0)


def test_no_rounding():
    settings = PaySettingsSchema(cpm=0.333)
    assert calculate_pay(1.1, [], settings) == 1.1 * 0.333


def test_zero_default_settings_pay_nothing():
    loads = [new_load(4, LoadType.DRY, CREATED)]
    assert calculate_pay(250, loads, PaySettingsSchema(), night_miles=30) == 0
