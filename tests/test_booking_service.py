"""
Tests for the booking and alert services over the JSON-backed gateway.
"""
import pytest
from unittest.mock import AsyncMock

from guardian.booking import BookingService
from guardian.errors import AuthorizationError, NotFoundError, StorageError, ValidationError
from guardian.services import AlertService


@pytest.fixture
def booking_service(gateway):
    return BookingService(gateway)


@pytest.fixture
def alert_service(gateway):
    return AlertService(gateway)


# ===========================
# Bookings
# ===========================

@pytest.mark.unit
async def test_create_then_get_round_trips(booking_service, bus_booking_data):
    booking, result = await booking_service.create("u1", bus_booking_data)

    fetched = await booking_service.get(booking["bookingId"])

    assert result.backend == "json_fallback"
    assert fetched["from"] == "Delhi"
    assert fetched["to"] == "Mumbai"
    assert fetched["passengers"] == booking["passengers"]
    assert fetched["status"] == "confirmed"
    assert fetched["userId"] == "u1"


@pytest.mark.unit
async def test_invalid_booking_not_persisted(booking_service, gateway, bus_booking_data):
    del bus_booking_data["from"]

    with pytest.raises(ValidationError):
        await booking_service.create("u1", bus_booking_data)

    assert (await gateway.get_all_bookings()).value == []


@pytest.mark.unit
async def test_unknown_booking(booking_service):
    with pytest.raises(NotFoundError):
        await booking_service.get("NX000000AAAA")


@pytest.mark.unit
async def test_update_by_other_user_rejected(booking_service, bus_booking_data):
    booking, _ = await booking_service.create("u1", bus_booking_data)

    with pytest.raises(AuthorizationError):
        await booking_service.update(booking["bookingId"], "u2", {"note": "hijack"})

    assert "note" not in await booking_service.get(booking["bookingId"])


@pytest.mark.unit
async def test_owner_update_revalidates(booking_service, bus_booking_data):
    booking, _ = await booking_service.create("u1", bus_booking_data)

    updated = await booking_service.update(booking["bookingId"], "u1", {"bookingData": {"seatType": "premium"}})

    assert updated["estimatedPrice"] == 1125
    assert updated["bookingId"] == booking["bookingId"]


@pytest.mark.unit
async def test_cancel_by_other_user_rejected(booking_service, bus_booking_data):
    booking, _ = await booking_service.create("u1", bus_booking_data)

    with pytest.raises(AuthorizationError):
        await booking_service.cancel(booking["bookingId"], "u2")

    assert (await booking_service.get(booking["bookingId"]))["status"] == "confirmed"


@pytest.mark.unit
async def test_cancel_is_idempotent(booking_service, bus_booking_data):
    booking, _ = await booking_service.create("u1", bus_booking_data)

    first = await booking_service.cancel(booking["bookingId"], "u1", "Plans changed")
    second = await booking_service.cancel(booking["bookingId"], "u1", "Again")

    assert first["status"] == "cancelled"
    assert first["cancellationReason"] == "Plans changed"
    assert second == first


@pytest.mark.unit
async def test_confirm_simulated_option(booking_service, bus_booking_data):
    options = booking_service.simulate(bus_booking_data)
    chosen = {**options[0], "bookingId": "NXFORGED", "status": "cancelled", "userId": "mallory"}

    booking, _ = await booking_service.confirm_option("u1", chosen)

    assert booking["bookingId"] != "NXFORGED"
    assert booking["status"] == "confirmed"
    assert booking["userId"] == "u1"
    assert booking["optionId"] == options[0]["optionId"]


@pytest.mark.unit
async def test_confirm_option_needs_type(booking_service):
    with pytest.raises(ValidationError):
        await booking_service.confirm_option("u1", {"optionId": "OPT1"})


@pytest.mark.unit
async def test_search_scoped_to_user(booking_service, bus_booking_data, flight_booking_data):
    await booking_service.create("u1", bus_booking_data)
    await booking_service.create("u2", flight_booking_data)

    bookings, criteria = await booking_service.search({"from": "delhi"}, user_id="u1")

    assert criteria["userId"] == "u1"
    assert [b["userId"] for b in bookings] == ["u1"]


@pytest.mark.unit
async def test_preferences_default_to_empty(booking_service):
    assert await booking_service.get_preferences("u1") == {}
    await booking_service.save_preferences("u1", {"language": "hi"})
    assert await booking_service.get_preferences("u1") == {"language": "hi"}


@pytest.mark.unit
async def test_storage_failure_surfaces_as_storage_error(booking_service, json_backend, bus_booking_data):
    json_backend.save_booking = AsyncMock(side_effect=OSError("disk full"))

    with pytest.raises(StorageError):
        await booking_service.create("u1", bus_booking_data)


# ===========================
# Alerts
# ===========================

@pytest.mark.unit
async def test_raise_alert_persists(alert_service):
    alert = await alert_service.raise_alert("u1", "medical", {"lat": 28.6, "lng": 77.2}, priority="critical")

    assert alert["alertId"].startswith("EMG")
    assert alert["status"] == "active"
    assert alert["priority"] == "critical"
    assert alert["persisted"] is True

    listed = await alert_service.list_alerts("u1")
    assert [a["alertId"] for a in listed] == [alert["alertId"]]


@pytest.mark.unit
async def test_alert_ids_unique(alert_service):
    first = await alert_service.raise_alert("u1", "fire")
    second = await alert_service.raise_alert("u1", "fire")
    assert first["alertId"] != second["alertId"]


@pytest.mark.unit
async def test_alert_delivered_even_when_save_fails(alert_service, json_backend):
    json_backend.save_alert = AsyncMock(side_effect=OSError("disk full"))

    alert = await alert_service.raise_alert("u1", "police")

    assert alert["persisted"] is False
    assert alert["type"] == "police"


@pytest.mark.unit
async def test_alert_requires_type(alert_service):
    with pytest.raises(ValidationError):
        await alert_service.raise_alert("u1", "")


@pytest.mark.unit
async def test_resolve_alert(alert_service):
    alert = await alert_service.raise_alert("u1", "medical")

    updated = await alert_service.update_status(alert["alertId"], "u1", "resolved", note="False alarm")

    assert updated["status"] == "resolved"
    assert updated["note"] == "False alarm"
    assert "resolvedAt" in updated
    assert await alert_service.list_alerts("u1", status="active") == []


@pytest.mark.unit
async def test_other_users_alert_not_found(alert_service):
    alert = await alert_service.raise_alert("u1", "medical")

    with pytest.raises(NotFoundError):
        await alert_service.update_status(alert["alertId"], "u2", "cancelled")


@pytest.mark.unit
async def test_invalid_alert_status(alert_service):
    alert = await alert_service.raise_alert("u1", "medical")

    with pytest.raises(ValidationError):
        await alert_service.update_status(alert["alertId"], "u1", "deleted")


# ===========================
# Update and confirmation hardening
# ===========================

@pytest.mark.unit
async def test_update_cannot_touch_server_or_derived_fields(booking_service, bus_booking_data):
    booking, _ = await booking_service.create("u1", bus_booking_data)

    updated = await booking_service.update(booking["bookingId"], "u1", {
        "status": "cancelled",
        "confirmationCode": "HACKED",
        "estimatedPrice": -5,
        "type": "flight",
        "note": "Window seat please"
    })

    assert updated["note"] == "Window seat please"
    assert updated["status"] == "confirmed"
    assert updated["confirmationCode"] == booking["confirmationCode"]
    assert updated["estimatedPrice"] == booking["estimatedPrice"]
    assert updated["type"] == "bus"


@pytest.mark.unit
async def test_top_level_booking_fields_are_revalidated(booking_service, bus_booking_data):
    booking, _ = await booking_service.create("u1", bus_booking_data)

    with pytest.raises(ValidationError):
        await booking_service.update(booking["bookingId"], "u1", {"date": "garbage"})

    updated = await booking_service.update(booking["bookingId"], "u1", {"date": "2099-06-01T08:00:00Z"})
    assert updated["date"] == "2099-06-01"


@pytest.mark.unit
async def test_update_with_only_protected_fields_rejected(booking_service, bus_booking_data):
    booking, _ = await booking_service.create("u1", bus_booking_data)

    with pytest.raises(ValidationError):
        await booking_service.update(booking["bookingId"], "u1", {"status": "confirmed", "estimatedPrice": 1})


@pytest.mark.unit
async def test_cancelled_booking_cannot_be_revived(booking_service, bus_booking_data):
    booking, _ = await booking_service.create("u1", bus_booking_data)
    cancelled = await booking_service.cancel(booking["bookingId"], "u1", "Plans changed")

    with pytest.raises(ValidationError):
        await booking_service.update(booking["bookingId"], "u1", {
            "status": "confirmed",
            "cancellationReason": None,
            "cancelledAt": None
        })

    assert await booking_service.get(booking["bookingId"]) == cancelled


@pytest.mark.unit
async def test_confirm_option_requires_type_fields(booking_service, gateway):
    with pytest.raises(ValidationError):
        await booking_service.confirm_option("u1", {"type": "bus"})

    assert (await gateway.get_all_bookings()).value == []


@pytest.mark.unit
@pytest.mark.parametrize("tamper", [
    {"date": "2001-01-01"},
    {"passengers": [{"name": ""}]},
    {"estimatedPrice": 0},
    {"estimatedPrice": "cheap"},
])
async def test_confirm_option_rejects_tampered_options(booking_service, bus_booking_data, tamper):
    option = {**booking_service.simulate(bus_booking_data)[0], **tamper}

    with pytest.raises(ValidationError):
        await booking_service.confirm_option("u1", option)


@pytest.mark.unit
@pytest.mark.parametrize("date_range", ["2099-01-01", {"from": "2099-01-01"}, {"start": 20990101}])
async def test_search_rejects_malformed_date_range(booking_service, bus_booking_data, date_range):
    await booking_service.create("u1", bus_booking_data)

    with pytest.raises(ValidationError):
        await booking_service.search({"dateRange": date_range})


@pytest.mark.unit
async def test_search_with_open_ended_date_range(booking_service, bus_booking_data):
    await booking_service.create("u1", bus_booking_data)

    bookings, _ = await booking_service.search({"dateRange": {"start": "2099-01-01", "end": None}})

    assert len(bookings) == 1


# ===========================
# Alert types and transitions
# ===========================

@pytest.mark.unit
async def test_alert_type_must_be_known(alert_service, gateway):
    with pytest.raises(ValidationError):
        await alert_service.raise_alert("u1", "alien-invasion")

    assert (await gateway.get_alerts("u1")).value == []


@pytest.mark.unit
async def test_alert_type_is_normalized(alert_service):
    alert = await alert_service.raise_alert("u1", " Fire ")
    assert alert["type"] == "fire"


@pytest.mark.unit
@pytest.mark.parametrize("first,second", [
    ("resolved", "active"),
    ("resolved", "cancelled"),
    ("cancelled", "resolved"),
])
async def test_closed_alert_is_final(alert_service, first, second):
    alert = await alert_service.raise_alert("u1", "medical")
    await alert_service.update_status(alert["alertId"], "u1", first)

    with pytest.raises(ValidationError):
        await alert_service.update_status(alert["alertId"], "u1", second)

    assert (await alert_service.list_alerts("u1"))[0]["status"] == first
