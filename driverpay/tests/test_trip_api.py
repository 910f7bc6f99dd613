"""
Integration tests for the trip, load and live-tracking endpoints.

Tests the full driving flow over HTTP, ownership enforcement and error
mapping.
"""

import logging

import pytest
from sqlalchemy import update

from conftest import fix_body
from driverpay.app.models.trip import Trip

# Note: Client and DB setup are in conftest.py

DAY_RATES = {
    "cpm": 1.0,
    "pay_per_load": 50.0,
    "pay_per_stop": 10.0,
    "night_pay_enabled": False,
}


@pytest.fixture
async def rates(client, auth_headers):
    response = await client.put("/v1/settings", json=DAY_RATES, headers=auth_headers)
    assert response.status_code == 200
    return response.json()


@pytest.fixture
async def trip(client, auth_headers, rates):
    response = await client.post("/v1/trips", json={"start_mileage": 1000}, headers=auth_headers)
    assert response.status_code == 201
    return response.json()["trip"]


@pytest.fixture
async def trip_with_load(client, auth_headers, trip):
    response = await client.post(
        f"/v1/trips/{trip['id']}/loads",
        json={"stop_count": 2, "load_type": "wet"},
        headers=auth_headers
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_create_trip(client, auth_headers, trip):
    assert trip["start_mileage"] == 1000
    assert trip["current_mileage"] == 1000
    assert trip["trip_miles"] == 0
    assert trip["total_pay"] == 0
    assert trip["loads"] == []
    assert trip["is_finished"] is False


@pytest.mark.asyncio
async def test_create_trip_rejects_negative_odometer(client, auth_headers):
    response = await client.post("/v1/trips", json={"start_mileage": -1}, headers=auth_headers)
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_requires_token(client):
    response = await client.get("/v1/trips")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client):
    response = await client.get("/v1/trips", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


@pytest.mark.asyncio
async def test_other_drivers_cannot_touch_trip(client, trip, other_auth_headers):
    response = await client.get(f"/v1/trips/{trip['id']}", headers=other_auth_headers)
    assert response.status_code == 403

    response = await client.post(
        f"/v1/trips/{trip['id']}/loads", json={"stop_count": 1}, headers=other_auth_headers
    )
    assert response.status_code == 403

    response = await client.delete(f"/v1/trips/{trip['id']}", headers=other_auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_trip(client, auth_headers):
    response = await client.get("/v1/trips/9999", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_add_load_prices_loads_and_stops(trip_with_load):
    load = trip_with_load["loads"][0]
    assert load["load_type"] == "wet"
    assert load["status"] == "NOT_BEGUN"
    assert load["active_stop_id"] == load["stops"][0]["id"]
    assert [stop["status"] for stop in load["stops"]] == ["PENDING", "PENDING"]
    assert trip_with_load["total_pay"] == pytest.approx(70)
    assert trip_with_load["pay"]["stops_pay"] == pytest.approx(20)


@pytest.mark.asyncio
async def test_add_load_needs_a_stop(client, auth_headers, trip):
    response = await client.post(
        f"/v1/trips/{trip['id']}/loads", json={"stop_count": 0}, headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION_001"


@pytest.mark.asyncio
async def test_full_driving_flow(client, auth_headers, trip_with_load):
    trip_id = trip_with_load["id"]
    load = trip_with_load["loads"][0]
    load_id = load["id"]
    first, second = [stop["id"] for stop in load["stops"]]
    base = f"/v1/trips/{trip_id}/loads/{load_id}"

    response = await client.post(f"{base}/begin", json=fix_body(0), headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "IN_PROGRESS"

    # Leg 1: 0 -> 3 miles
    response = await client.post(f"{base}/stops/{first}/depart", json=fix_body(0), headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["state"] == "TRACKING"

    response = await client.post(
        f"/v1/trips/{trip_id}/location",
        json=fix_body(2)["location"],
        headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["delta_miles"] == pytest.approx(2)

    response = await client.get(f"/v1/trips/{trip_id}/tracking", headers=auth_headers)
    status = response.json()
    assert status["tracking_miles_buffer"] == pytest.approx(2)
    assert status["projected_pay"] == pytest.approx(2 + 50 + 20)

    response = await client.post(f"{base}/stops/{first}/arrive", json=fix_body(3), headers=auth_headers)
    assert response.status_code == 200
    arrival = response.json()
    assert arrival["segment_miles"] == pytest.approx(3)
    assert arrival["trip"]["current_mileage"] == pytest.approx(1003)
    assert arrival["trip"]["total_pay"] == pytest.approx(3 + 50 + 20)
    assert arrival["trip"]["loads"][0]["active_stop_id"] == second

    # Leg 2: 3 -> 5 miles, then back to the depot: 5 -> 9 miles
    await client.post(f"{base}/stops/{second}/depart", json=fix_body(3), headers=auth_headers)
    response = await client.post(f"{base}/stops/{second}/arrive", json=fix_body(5), headers=auth_headers)
    assert response.json()["trip"]["loads"][0]["status"] == "ALL_STOPS_ARRIVED"
    assert response.json()["trip"]["loads"][0]["can_depart_to_depot"] is True

    response = await client.post(f"{base}/depot/depart", json=fix_body(5), headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["target"] == {"kind": "depot", "load_id": load_id}

    response = await client.post(f"{base}/depot/arrive", json=fix_body(9), headers=auth_headers)
    assert response.status_code == 200
    finished_load = response.json()["trip"]["loads"][0]
    assert finished_load["status"] == "FINISHED"
    assert response.json()["trip"]["current_mileage"] == pytest.approx(1009)

    response = await client.post(f"/v1/trips/{trip_id}/finish", json={}, headers=auth_headers)
    assert response.status_code == 200
    finished = response.json()
    assert finished["is_finished"] is True
    assert finished["end_mileage"] == pytest.approx(1009)
    assert finished["total_pay"] == pytest.approx(9 + 50 + 20)

    response = await client.get(f"/v1/trips/{trip_id}/history", headers=auth_headers)
    actions = [log["action"] for log in response.json()["logs"]]
    assert actions.count("SEGMENT_STARTED") == 3
    assert actions.count("STOP_ARRIVED") == 2
    assert {"TRIP_CREATED", "LOAD_ADDED", "LOAD_BEGUN", "DEPOT_ARRIVED", "TRIP_FINISHED"} <= set(actions)


@pytest.mark.asyncio
async def test_location_denied_on_depart(client, auth_headers, trip_with_load):
    trip_id = trip_with_load["id"]
    load = trip_with_load["loads"][0]

    response = await client.post(
        f"/v1/trips/{trip_id}/loads/{load['id']}/stops/{load['stops'][0]['id']}/depart",
        json={"location_error": "PERMISSION_DENIED"},
        headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_LOCATION_001"
    assert response.json()["details"]["reason"] == "PERMISSION_DENIED"

    response = await client.get(f"/v1/trips/{trip_id}/tracking", headers=auth_headers)
    assert response.json()["state"] == "IDLE"


@pytest.mark.asyncio
async def test_stop_order_and_segment_conflicts(client, auth_headers, trip_with_load):
    trip_id = trip_with_load["id"]
    load = trip_with_load["loads"][0]
    base = f"/v1/trips/{trip_id}/loads/{load['id']}"
    first, second = [stop["id"] for stop in load["stops"]]

    response = await client.post(f"{base}/stops/{second}/depart", json=fix_body(0), headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_STOP_ORDER_001"
    assert response.json()["details"]["next_stop_id"] == first

    response = await client.post(f"{base}/depot/depart", json=fix_body(0), headers=auth_headers)
    assert response.status_code == 409

    response = await client.post(
        f"/v1/trips/{trip_id}/location", json=fix_body(1)["location"], headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_SEGMENT_001"

    await client.post(f"{base}/stops/{first}/depart", json=fix_body(0), headers=auth_headers)
    response = await client.post(
        f"/v1/trips/{trip_id}/mileage", json={"odometer": 1010}, headers=auth_headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_edit_and_delete_loads(client, auth_headers, trip_with_load):
    trip_id = trip_with_load["id"]
    load = trip_with_load["loads"][0]

    response = await client.patch(
        f"/v1/trips/{trip_id}/loads/{load['id']}", json={"stop_count": 4}, headers=auth_headers
    )
    assert response.status_code == 200
    assert len(response.json()["loads"][0]["stops"]) == 4
    assert response.json()["total_pay"] == pytest.approx(50 + 40)

    stop_id = response.json()["loads"][0]["stops"][0]["id"]
    response = await client.delete(
        f"/v1/trips/{trip_id}/loads/{load['id']}/stops/{stop_id}", headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["total_pay"] == pytest.approx(50 + 30)

    response = await client.delete(f"/v1/trips/{trip_id}/loads/{load['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["loads"] == []
    assert response.json()["total_pay"] == 0

    response = await client.delete(f"/v1/trips/{trip_id}/loads/{load['id']}", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_manual_mileage_and_finish(client, auth_headers, trip):
    trip_id = trip["id"]

    response = await client.post(f"/v1/trips/{trip_id}/mileage", json={"odometer": 999}, headers=auth_headers)
    assert response.status_code == 400

    response = await client.post(f"/v1/trips/{trip_id}/mileage", json={"odometer": 1040}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["total_pay"] == pytest.approx(40)

    response = await client.post(
        f"/v1/trips/{trip_id}/finish", json={"final_odometer": 1050}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["end_mileage"] == 1050
    assert response.json()["total_pay"] == pytest.approx(50)

    response = await client.post(
        f"/v1/trips/{trip_id}/loads", json={"stop_count": 1}, headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRIP_001"

    response = await client.get(f"/v1/trips/{trip_id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["is_finished"] is True


@pytest.mark.asyncio
async def test_finish_folds_live_segment(client, auth_headers, trip_with_load):
    trip_id = trip_with_load["id"]
    load = trip_with_load["loads"][0]
    await client.post(
        f"/v1/trips/{trip_id}/loads/{load['id']}/stops/{load['stops'][0]['id']}/depart",
        json=fix_body(0),
        headers=auth_headers
    )
    await client.post(f"/v1/trips/{trip_id}/location", json=fix_body(4)["location"], headers=auth_headers)

    response = await client.post(f"/v1/trips/{trip_id}/finish", json={}, headers=auth_headers)

    assert response.json()["current_mileage"] == pytest.approx(1004)
    assert response.json()["tracking_active"] is False


@pytest.mark.asyncio
async def test_tracking_sync(client, auth_headers, trip_with_load, db_session):
    trip_id = trip_with_load["id"]
    load = trip_with_load["loads"][0]
    await client.post(
        f"/v1/trips/{trip_id}/loads/{load['id']}/stops/{load['stops'][0]['id']}/depart",
        json=fix_body(0),
        headers=auth_headers
    )
    await client.post(f"/v1/trips/{trip_id}/location", json=fix_body(1.5)["location"], headers=auth_headers)

    response = await client.post(f"/v1/trips/{trip_id}/tracking/sync", headers=auth_headers)
    assert response.status_code == 200

    stored = await db_session.get(Trip, trip_id)
    assert stored.tracking_miles_buffer == pytest.approx(1.5)


@pytest.mark.asyncio
async def test_location_stream_error(client, auth_headers, trip_with_load, caplog):
    trip_id = trip_with_load["id"]
    load = trip_with_load["loads"][0]
    url = f"/v1/trips/{trip_id}/location/error"

    response = await client.post(url, json={"error": "SIGNAL_LOST"}, headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_SEGMENT_001"

    await client.post(
        f"/v1/trips/{trip_id}/loads/{load['id']}/stops/{load['stops'][0]['id']}/depart",
        json=fix_body(0),
        headers=auth_headers
    )
    await client.post(f"/v1/trips/{trip_id}/location", json=fix_body(1.5)["location"], headers=auth_headers)

    with caplog.at_level(logging.WARNING, logger="driverpay.tracking"):
        response = await client.post(url, json={"error": "SIGNAL_LOST"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["state"] == "TRACKING"
    assert response.json()["tracking_miles_buffer"] == pytest.approx(1.5)
    assert "Location stream interrupted" in caplog.text

    response = await client.post(url, json={"error": ""}, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_pay_drift_is_healed_on_read(client, auth_headers, trip_with_load, db_session):
    trip_id = trip_with_load["id"]
    await db_session.execute(update(Trip).where(Trip.id == trip_id).values(total_pay=1.0))
    await db_session.commit()

    response = await client.get(f"/v1/trips/{trip_id}", headers=auth_headers)
    assert response.json()["total_pay"] == pytest.approx(70)

    response = await client.get(f"/v1/trips/{trip_id}/history", headers=auth_headers)
    assert response.json()["logs"][0]["action"] == "PAY_RECONCILED"


@pytest.mark.asyncio
async def test_list_weekly_summary_and_delete(client, auth_headers, trip_with_load):
    trip_id = trip_with_load["id"]

    response = await client.get("/v1/trips", headers=auth_headers)
    assert response.json()["total"] == 1
    assert response.json()["trips"][0]["load_count"] == 1

    response = await client.get("/v1/trips/summary/weekly", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["trip_count"] == 1
    assert response.json()["total_pay"] == pytest.approx(70)

    response = await client.delete(f"/v1/trips/{trip_id}", headers=auth_headers)
    assert response.status_code == 200

    response = await client.get(f"/v1/trips/{trip_id}", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_listings_use_current_rates(client, auth_headers, trip_with_load):
    # Stored pay is 70; the rate change is not written back until the trip is opened
    await client.put("/v1/settings", json={**DAY_RATES, "pay_per_load": 80.0}, headers=auth_headers)

    response = await client.get("/v1/trips", headers=auth_headers)
    assert response.json()["trips"][0]["total_pay"] == pytest.approx(100)

    response = await client.get("/v1/trips/summary/weekly", headers=auth_headers)
    assert response.json()["total_pay"] == pytest.approx(100)


@pytest.mark.asyncio
async def test_root_and_correlation_header(client):
    response = await client.get("/", headers={"X-Correlation-ID": "abc-123"})
    assert response.status_code == 200
    assert response.headers["X-Correlation-ID"] == "abc-123"
