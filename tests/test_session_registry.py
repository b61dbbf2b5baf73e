"""
Tests for the live connection registry.
"""
import pytest

from guardian.session import SessionRegistry, session_group, user_group


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.mark.unit
def test_register_and_authorize(registry):
    record = registry.register("c1", "u1", "s1", {"lang": "en"})

    assert record.user_id == "u1"
    assert record.session_id == "s1"
    assert registry.authorize("c1", "u1") is True
    assert registry.authorize("c1", "u2") is False
    assert registry.authorize("c2", "u1") is False
    assert registry.authorize("c1", None) is False


@pytest.mark.unit
def test_session_defaults_to_default(registry):
    record = registry.register("c1", "u1")
    assert record.session_id == "default"
    assert registry.session_connections("u1") == {"c1"}


@pytest.mark.unit
def test_reregistration_overwrites_and_moves_groups(registry):
    registry.register("c1", "u1", "s1")
    registry.register("c1", "u2", "s2")

    assert registry.authorize("c1", "u2")
    assert not registry.authorize("c1", "u1")
    assert registry.user_connections("u1") == set()
    assert registry.members(session_group("u2", "s2")) == {"c1"}
    assert registry.count_connections() == 1


@pytest.mark.unit
def test_fan_out_groups(registry):
    registry.register("c1", "u1", "s1")
    registry.register("c2", "u1", "s2")
    registry.register("c3", "u2", "s1")

    assert registry.members(user_group("u1")) == {"c1", "c2"}
    assert registry.session_connections("u1", "s1") == {"c1"}
    assert registry.count_users() == 2


@pytest.mark.unit
def test_remove_is_idempotent(registry):
    registry.register("c1", "u1")

    assert registry.remove("c1") is not None
    assert registry.remove("c1") is None
    assert not registry.is_registered("c1")
    assert registry.user_connections("u1") == set()
    assert registry.get_stats()["groups"] == 0


@pytest.mark.unit
def test_list_active_is_a_snapshot(registry):
    registry.register("c1", "u1")
    snapshot = registry.list_active()

    registry.register("c2", "u2")
    snapshot[0].user_id = "tampered"

    assert len(snapshot) == 1
    assert registry.get("c1").user_id == "u1"


@pytest.mark.unit
def test_touch_updates_last_activity(registry):
    registry.register("c1", "u1")
    before = registry.get("c1").last_activity

    registry.touch("c1")
    registry.touch("unknown")

    assert registry.get("c1").last_activity >= before


@pytest.mark.unit
def test_to_status_uses_wire_names(registry):
    status = registry.register("c1", "u1", "s1").to_status()
    assert set(status) == {"userId", "sessionId", "connectedAt", "lastActivity"}
