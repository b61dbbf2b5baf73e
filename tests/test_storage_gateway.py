"""
Tests for the storage gateway and both backends: CRUD, search, stats,
failover, backup and reconciliation.
"""
import json
import pytest
from unittest.mock import AsyncMock

from guardian.storage.backend import matches_criteria


def make_booking(booking_id, user_id="u1", booking_type="bus", status="confirmed",
                 travel_date="2099-01-15", created="2020-01-01T10:00:00.000Z", price=750, **extra):
    booking = {
        "bookingId": booking_id,
        "userId": user_id,
        "type": booking_type,
        "status": status,
        "from": "Delhi",
        "to": "Mumbai",
        "estimatedPrice": price,
        "createdAt": created,
        "updatedAt": created,
        **extra
    }
    if booking_type == "flight":
        booking["departureDate"] = travel_date
    else:
        booking["date"] = travel_date
    return booking


@pytest.fixture(params=["json", "durable"])
def any_gateway(request, gateway, durable_gateway):
    """Run the CRUD contract against both backends."""
    return gateway if request.param == "json" else durable_gateway


# ===========================
# Booking CRUD
# ===========================

@pytest.mark.unit
async def test_save_and_get_booking(any_gateway):
    saved = await any_gateway.save_booking(make_booking("NXA"))
    assert saved.success

    result = await any_gateway.get_booking("NXA")
    assert result.success
    assert result.value["userId"] == "u1"
    assert result.backend == any_gateway.active_backend


@pytest.mark.unit
async def test_missing_booking_is_success_with_none(any_gateway):
    result = await any_gateway.get_booking("nope")
    assert result.success
    assert result.value is None


@pytest.mark.unit
async def test_returned_documents_are_copies(any_gateway):
    await any_gateway.save_booking(make_booking("NXA"))

    first = (await any_gateway.get_booking("NXA")).value
    first["status"] = "tampered"

    assert (await any_gateway.get_booking("NXA")).value["status"] == "confirmed"


@pytest.mark.unit
async def test_update_keeps_immutable_fields(any_gateway):
    await any_gateway.save_booking(make_booking("NXA"))

    result = await any_gateway.update_booking("NXA", {"status": "cancelled", "userId": "mallory", "bookingId": "X"})

    assert result.value["status"] == "cancelled"
    assert result.value["userId"] == "u1"
    assert result.value["bookingId"] == "NXA"
    assert result.value["updatedAt"] > "2020-01-01T10:00:00.000Z"


@pytest.mark.unit
async def test_update_missing_booking(any_gateway):
    result = await any_gateway.update_booking("nope", {"status": "cancelled"})
    assert result.success
    assert result.value is None


@pytest.mark.unit
async def test_user_bookings_filtered_newest_first(any_gateway):
    await any_gateway.save_booking(make_booking("NX1", created="2030-01-01T00:00:00.000Z"))
    await any_gateway.save_booking(make_booking("NX2", created="2030-01-03T00:00:00.000Z", booking_type="train"))
    await any_gateway.save_booking(make_booking("NX3", created="2030-01-02T00:00:00.000Z", status="cancelled"))
    await any_gateway.save_booking(make_booking("NX4", user_id="u2"))

    everything = (await any_gateway.get_user_bookings("u1")).value
    assert [b["bookingId"] for b in everything] == ["NX2", "NX3", "NX1"]

    confirmed = (await any_gateway.get_user_bookings("u1", status="confirmed")).value
    assert [b["bookingId"] for b in confirmed] == ["NX2", "NX1"]

    trains = (await any_gateway.get_user_bookings("u1", booking_type="train")).value
    assert [b["bookingId"] for b in trains] == ["NX2"]

    limited = (await any_gateway.get_user_bookings("u1", limit=1)).value
    assert [b["bookingId"] for b in limited] == ["NX2"]


@pytest.mark.unit
async def test_search_by_route_and_date_range(any_gateway):
    await any_gateway.save_booking(make_booking("NX1", travel_date="2099-01-10"))
    await any_gateway.save_booking(make_booking("NX2", travel_date="2099-02-10", booking_type="flight"))
    await any_gateway.save_booking(make_booking("NX3", travel_date="2099-03-10", to="Pune"))

    result = await any_gateway.search_bookings({
        "from": "del",
        "to": "MUM",
        "dateRange": {"start": "2099-01-01", "end": "2099-02-28"}
    })

    assert sorted(b["bookingId"] for b in result.value) == ["NX1", "NX2"]


@pytest.mark.unit
async def test_stats(any_gateway):
    await any_gateway.save_booking(make_booking("NX1", price=750))
    await any_gateway.save_booking(make_booking("NX2", booking_type="flight", price=20000))
    await any_gateway.save_booking(make_booking("NX3", user_id="u2", price=100))

    stats = (await any_gateway.get_booking_stats("u1")).value

    assert stats["total"] == 2
    assert stats["byType"] == {"bus": 1, "flight": 1}
    assert stats["byStatus"] == {"confirmed": 2}
    assert stats["totalValue"] == 20750
    assert len(stats["recentBookings"]) == 2


# ===========================
# Preferences and alerts
# ===========================

@pytest.mark.unit
async def test_preferences_round_trip(any_gateway):
    assert (await any_gateway.get_user_preferences("u1")).value is None

    await any_gateway.save_user_preferences("u1", {"language": "hi"})
    await any_gateway.save_user_preferences("u1", {"language": "en", "voice": "female"})

    assert (await any_gateway.get_user_preferences("u1")).value == {"language": "en", "voice": "female"}


@pytest.mark.unit
async def test_alert_status_filter(any_gateway):
    base = {"userId": "u1", "type": "medical", "priority": "high", "createdAt": "2030-01-01T00:00:00.000Z"}
    await any_gateway.save_alert({**base, "alertId": "EM1", "status": "active"})
    await any_gateway.save_alert({**base, "alertId": "EM2", "status": "active"})

    await any_gateway.update_alert("EM1", {"status": "resolved"})

    active = (await any_gateway.get_alerts("u1", status="active")).value
    assert [a["alertId"] for a in active] == ["EM2"]


# ===========================
# Failover
# ===========================

@pytest.mark.unit
async def test_json_only_gateway_reports_fallback(gateway):
    result = await gateway.save_booking(make_booking("NXA"))

    assert result.backend == "json_fallback"
    assert result.degraded
    assert not result.failed_over


@pytest.mark.unit
async def test_healthy_durable_is_preferred(durable_gateway):
    result = await durable_gateway.save_booking(make_booking("NXA"))

    assert result.backend == "durable"
    assert not result.degraded


@pytest.mark.unit
async def test_unhealthy_durable_goes_straight_to_fallback(durable_gateway, sql_backend):
    sql_backend.health.mark_down("test outage")
    sql_backend.save_booking = AsyncMock()

    result = await durable_gateway.save_booking(make_booking("NXA"))

    assert result.success
    assert result.backend == "json_fallback"
    assert result.attempts == ["json_fallback"]
    sql_backend.save_booking.assert_not_awaited()
    assert (await durable_gateway.get_booking("NXA")).value["bookingId"] == "NXA"


@pytest.mark.unit
async def test_durable_exception_fails_over_once(durable_gateway, sql_backend):
    sql_backend.save_booking = AsyncMock(side_effect=RuntimeError("disk full"))

    result = await durable_gateway.save_booking(make_booking("NXA"))

    assert result.success
    assert result.failed_over
    assert result.backend == "json_fallback"
    assert result.attempts == ["durable", "json_fallback"]


@pytest.mark.unit
async def test_every_backend_failing_is_reported_not_raised(gateway, json_backend):
    json_backend.save_booking = AsyncMock(side_effect=OSError("read-only"))

    result = await gateway.save_booking(make_booking("NXA"))

    assert not result.success
    assert result.error == "save_booking failed: OSError"
    assert result.to_dict()["success"] is False


@pytest.mark.unit
async def test_health_check_status(gateway, durable_gateway, sql_backend):
    assert (await gateway.health_check())["status"] == "json_fallback"
    assert (await durable_gateway.health_check())["status"] == "durable"

    sql_backend.health.mark_down("gone")
    assert (await durable_gateway.health_check())["status"] == "json_fallback"


@pytest.mark.unit
async def test_refresh_health_restores_flag(durable_gateway, sql_backend):
    sql_backend.health.mark_down("blip")

    assert await durable_gateway.refresh_health() is True
    assert durable_gateway.durable_healthy


@pytest.mark.unit
async def test_refresh_health_without_durable(gateway):
    assert await gateway.refresh_health() is False


# ===========================
# Reconciliation and backup
# ===========================

@pytest.mark.unit
async def test_reconcile_copies_fallback_records(durable_gateway, sql_backend, json_backend):
    await sql_backend.save_user_preferences("u1", {"language": "en"})

    sql_backend.health.mark_down("outage")
    await durable_gateway.save_booking(make_booking("NXA"))
    await durable_gateway.save_user_preferences("u1", {"language": "hi"})
    await durable_gateway.save_user_preferences("u2", {"language": "ta"})
    await durable_gateway.save_alert({
        "alertId": "EM1", "userId": "u1", "type": "fire", "status": "active",
        "createdAt": "2030-01-01T00:00:00.000Z", "updatedAt": "2030-01-01T00:00:00.000Z"
    })
    assert await sql_backend.get_booking("NXA") is None

    sql_backend.health.mark_up()
    report = await durable_gateway.reconcile()

    assert report["status"] == "completed"
    assert report["copied"] == {"bookings": 1, "preferences": 1, "alerts": 1}
    assert (await sql_backend.get_booking("NXA"))["bookingId"] == "NXA"
    # Existing durable preferences win
    assert await sql_backend.get_user_preferences("u1") == {"language": "en"}
    assert await sql_backend.get_user_preferences("u2") == {"language": "ta"}


@pytest.mark.unit
async def test_reconcile_skips_older_copies(durable_gateway, sql_backend, json_backend):
    await json_backend.save_booking(make_booking("NXA", status="confirmed", created="2030-01-01T00:00:00.000Z"))
    await sql_backend.save_booking(make_booking("NXA", status="cancelled", created="2030-01-02T00:00:00.000Z"))

    report = await durable_gateway.reconcile()

    assert report["copied"]["bookings"] == 0
    assert (await sql_backend.get_booking("NXA"))["status"] == "cancelled"


@pytest.mark.unit
async def test_reconcile_skipped_without_durable(gateway):
    assert (await gateway.reconcile())["status"] == "skipped"


@pytest.mark.unit
async def test_backup_and_restore(gateway):
    await gateway.save_booking(make_booking("NXA"))
    backup = await gateway.create_backup()
    assert backup.success

    with open(backup.value, encoding="utf-8") as f:
        assert [b["bookingId"] for b in json.load(f)["bookings"]] == ["NXA"]

    await gateway.save_booking(make_booking("NXB"))
    restored = await gateway.restore_from_backup(backup.value)

    assert restored.success
    assert [b["bookingId"] for b in (await gateway.get_all_bookings()).value] == ["NXA"]


# ===========================
# Search predicate
# ===========================

@pytest.mark.unit
def test_date_criteria_matches_either_date_field():
    flight = make_booking("NX1", booking_type="flight", travel_date="2099-02-01")

    assert matches_criteria(flight, {"date": "2099-02-01"})
    assert matches_criteria(flight, {"date": "2099-02-01T00:00:00Z"})
    assert not matches_criteria(flight, {"date": "2099-02-02"})
    assert matches_criteria(flight, {"dateRange": {"start": "2099-02-01"}})
    assert not matches_criteria(flight, {"dateRange": {"end": "2099-01-31"}})
    assert not matches_criteria(flight, {"type": "bus"})
