"""
Tests for the pay settings endpoints.
"""

import pytest


@pytest.mark.asyncio
async def test_defaults_before_first_save(client, auth_headers):
    response = await client.get("/v1/settings", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == "driver-1"
    assert data["cpm"] == 0
    assert data["pay_per_load"] == 0
    assert data["night_pay_enabled"] is False
    assert data["night_start_minutes"] == 1140
    assert data["night_end_minutes"] == 180
    assert data["timezone"] == "UTC"


@pytest.mark.asyncio
async def test_save_and_read_back(client, auth_headers, other_auth_headers):
    payload = {
        "cpm": 0.65,
        "pay_per_load": 40,
        "pay_per_stop": 15,
        "night_pay_enabled": True,
        "night_start_minutes": 1320,
        "night_end_minutes": 300,
        "night_extra_cpm": 0.05,
        "timezone": "America/Chicago",
    }
    response = await client.put("/v1/settings", json=payload, headers=auth_headers)
    assert response.status_code == 200

    response = await client.get("/v1/settings", headers=auth_headers)
    data = response.json()
    assert data["cpm"] == pytest.approx(0.65)
    assert data["night_start_minutes"] == 1320
    assert data["timezone"] == "America/Chicago"

    # Settings are per driver
    response = await client.get("/v1/settings", headers=other_auth_headers)
    assert response.json()["cpm"] == 0


@pytest.mark.asyncio
async def test_second_save_replaces_first(client, auth_headers):
    await client.put("/v1/settings", json={"cpm": 0.5}, headers=auth_headers)
    await client.put("/v1/settings", json={"cpm": 0.7, "pay_per_stop": 5}, headers=auth_headers)

    data = (await client.get("/v1/settings", headers=auth_headers)).json()
    assert data["cpm"] == pytest.approx(0.7)
    assert data["pay_per_stop"] == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"cpm": -0.1},
    {"night_start_minutes": 1440},
    {"timezone": "Mars/Olympus_Mons"},
])
async def test_invalid_settings_rejected(client, auth_headers, payload):
    response = await client.put("/v1/settings", json=payload, headers=auth_headers)

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_settings_change_reprices_open_trip(client, auth_headers):
    await client.put("/v1/settings", json={"pay_per_load": 50}, headers=auth_headers)
    trip = (await client.post("/v1/trips", json={"start_mileage": 0}, headers=auth_headers)).json()["trip"]
    await client.post(f"/v1/trips/{trip['id']}/loads", json={"stop_count": 1}, headers=auth_headers)

    await client.put("/v1/settings", json={"pay_per_load": 60}, headers=auth_headers)
    response = await client.get(f"/v1/trips/{trip['id']}", headers=auth_headers)

    # Stored pay no longer matches the rates, so opening the trip corrects it
    assert response.json()["total_pay"] == pytest.approx(60)
