"""
Tests for the socket command dispatcher against a recording emitter.
"""
import pytest
from typing import Any, Dict, Iterable, List, Optional, Tuple

from guardian.agents import ResponseOrchestrator
from guardian.api.dispatcher import CommandDispatcher, FEATURES, UNAUTHORIZED_MESSAGE
from guardian.booking import BookingService
from guardian.services import AlertService
from guardian.session import SessionRegistry


class RecordingEmitter:
    """ConnectionManager stand-in that records deliveries to open connections."""

    def __init__(self, *connection_ids: str):
        self.open = set(connection_ids)
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []

    async def send(self, connection_id: str, event: str, data: Dict[str, Any]) -> bool:
        if connection_id not in self.open:
            return False
        self.sent.append((connection_id, event, data))
        return True

    async def send_many(self, connection_ids: Iterable[str], event: str, data: Dict[str, Any],
                        exclude: Optional[str] = None) -> int:
        delivered = 0
        for connection_id in list(connection_ids):
            if connection_id != exclude and await self.send(connection_id, event, data):
                delivered += 1
        return delivered

    async def broadcast(self, event: str, data: Dict[str, Any]) -> int:
        return await self.send_many(sorted(self.open), event, data)

    def events(self, connection_id: str) -> List[str]:
        return [event for cid, event, _ in self.sent if cid == connection_id]

    def last(self, connection_id: str, event: str) -> Dict[str, Any]:
        return [data for cid, ev, data in self.sent if cid == connection_id and ev == event][-1]


@pytest.fixture
def emitter():
    return RecordingEmitter("c1", "c2", "c3")


@pytest.fixture
def providers(fake_provider_factory):
    return [
        fake_provider_factory("deepseek", reply="Hello! How can I help?"),
        fake_provider_factory("openai"),
        fake_provider_factory("web_search")
    ]


@pytest.fixture
def dispatcher(emitter, providers, conversation_store, provider_config, gateway):
    orchestrator = ResponseOrchestrator(providers, conversation_store, provider_config)
    return CommandDispatcher(
        SessionRegistry(),
        emitter,
        orchestrator,
        BookingService(gateway),
        AlertService(gateway)
    )


async def connect(dispatcher, connection_id, user_id, session_id=None):
    await dispatcher.dispatch(connection_id, "user-connect", {"userId": user_id, "sessionId": session_id})


# ===========================
# Session lifecycle
# ===========================

@pytest.mark.unit
async def test_user_connect_confirms(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")

    confirmed = emitter.last("c1", "connection-confirmed")
    assert confirmed["userId"] == "u1"
    assert confirmed["sessionId"] == "default"
    assert confirmed["features"] == FEATURES


@pytest.mark.unit
async def test_user_connect_without_user_id(dispatcher, emitter):
    await dispatcher.dispatch("c1", "user-connect", {})

    assert emitter.events("c1") == ["connection-error"]
    assert emitter.last("c1", "connection-error")["error"] == "User ID is required"


@pytest.mark.unit
async def test_event_before_connect_is_unauthorized(dispatcher, emitter, providers):
    await dispatcher.dispatch("c1", "chat-message", {"userId": "u1", "message": "Hello"})

    assert emitter.events("c1") == ["chat-error"]
    assert emitter.last("c1", "chat-error")["error"] == UNAUTHORIZED_MESSAGE
    assert providers[0].calls == []


@pytest.mark.unit
async def test_event_for_another_user_is_unauthorized(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")

    await dispatcher.dispatch("c1", "booking-request", {"userId": "u2", "bookingData": {}})

    assert emitter.events("c1")[-1] == "booking-error"
    assert emitter.last("c1", "booking-error")["error"] == UNAUTHORIZED_MESSAGE


@pytest.mark.unit
async def test_disconnect_revokes_session(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")
    dispatcher.handle_disconnect("c1")
    dispatcher.handle_disconnect("c1")

    await dispatcher.dispatch("c1", "request-status-update", {"userId": "u1"})

    assert emitter.events("c1")[-1] == "status-error"


@pytest.mark.unit
async def test_status_update(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1", "trip")

    await dispatcher.dispatch("c1", "request-status-update", {"userId": "u1"})

    status = emitter.last("c1", "status-update")
    assert status["isOnline"] is True
    assert status["sessionId"] == "trip"


@pytest.mark.unit
async def test_unknown_event(dispatcher, emitter):
    await dispatcher.dispatch("c1", "teleport", {})

    assert emitter.events("c1") == ["error"]
    assert "teleport" in emitter.last("c1", "error")["error"]


# ===========================
# Chat
# ===========================

@pytest.mark.unit
async def test_chat_message_round_trip(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")
    await connect(dispatcher, "c2", "u1")
    await connect(dispatcher, "c3", "u2")

    await dispatcher.dispatch("c1", "chat-message", {"userId": "u1", "message": "Hello"})

    assert emitter.events("c1")[-2:] == ["chat-processing", "chat-response"]
    response = emitter.last("c1", "chat-response")
    assert response["response"]
    assert response["conversationId"] == "default"

    # Other connections of the same user see the exchange, other users do not
    assert emitter.last("c2", "chat-sync")["assistantResponse"] == "Hello! How can I help?"
    assert "chat-sync" not in emitter.events("c1")
    assert "chat-sync" not in emitter.events("c3")


@pytest.mark.unit
async def test_chat_message_requires_text(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")

    await dispatcher.dispatch("c1", "chat-message", {"userId": "u1", "message": ""})

    assert emitter.last("c1", "chat-error")["error"] == "Message is required"


@pytest.mark.unit
async def test_handler_crash_reports_generic_error(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")

    async def explode(*args, **kwargs):
        raise RuntimeError("boom")

    dispatcher.orchestrator.chat = explode
    await dispatcher.dispatch("c1", "chat-message", {"userId": "u1", "message": "Hi"})

    assert emitter.last("c1", "chat-error")["error"] == "Failed to process message"


@pytest.mark.unit
async def test_chat_stream_events(dispatcher, emitter, providers):
    providers[0].chunks = ["Hel", "lo"]
    await connect(dispatcher, "c1", "u1")

    await dispatcher.dispatch("c1", "chat-stream-request", {"userId": "u1", "message": "Hi"})

    assert emitter.events("c1")[1:] == ["chat-stream-chunk", "chat-stream-chunk", "chat-stream-complete"]
    complete = emitter.last("c1", "chat-stream-complete")
    assert complete["fullResponse"] == "Hello"
    assert complete["source"] == "deepseek"


@pytest.mark.unit
async def test_chat_stream_stops_when_connection_closes(dispatcher, emitter, providers, conversation_store):
    from guardian.conversation import ConversationKey

    providers[0].chunks = ["a", "b", "c"]
    await connect(dispatcher, "c1", "u1")
    emitter.open.discard("c1")

    await dispatcher.dispatch("c1", "chat-stream-request", {"userId": "u1", "message": "Hi"})

    assert await conversation_store.get(ConversationKey.for_text("u1")) == []


@pytest.mark.unit
async def test_typing_relay(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1", "s1")
    await connect(dispatcher, "c2", "u1", "s1")
    await connect(dispatcher, "c3", "u1", "s2")

    await dispatcher.dispatch("c1", "typing-start", {"userId": "u1", "conversationId": "s1"})

    assert emitter.last("c2", "user-typing")["isTyping"] is True
    assert "user-typing" not in emitter.events("c1")
    assert "user-typing" not in emitter.events("c3")


@pytest.mark.unit
async def test_typing_from_mismatched_user_dropped_silently(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")
    await connect(dispatcher, "c2", "u2")

    await dispatcher.dispatch("c1", "typing-stop", {"userId": "u2"})

    assert "user-typing" not in emitter.events("c2")
    assert "typing-error" not in emitter.events("c1")


# ===========================
# Voice
# ===========================

@pytest.mark.unit
async def test_voice_command_with_booking_advisory(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")

    await dispatcher.dispatch("c1", "voice-command", {
        "userId": "u1",
        "transcript": "Book a train ticket to Agra",
        "confidence": 0.95
    })

    assert emitter.events("c1")[-2:] == ["voice-response", "voice-booking-detected"]
    assert emitter.last("c1", "voice-booking-detected")["commandType"] == "booking"


@pytest.mark.unit
async def test_low_confidence_voice_asks_to_repeat(dispatcher, emitter, providers):
    await connect(dispatcher, "c1", "u1")

    await dispatcher.dispatch("c1", "voice-command", {"userId": "u1", "transcript": "help", "confidence": 0.2})

    assert emitter.last("c1", "voice-response")["requiresRepeat"] is True
    assert "voice-emergency-detected" not in emitter.events("c1")
    assert providers[0].calls == []


@pytest.mark.unit
async def test_voice_stream_ack(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")

    await dispatcher.dispatch("c1", "voice-stream", {"userId": "u1", "isComplete": True})

    assert emitter.events("c1")[-2:] == ["voice-stream-ack", "voice-stream-processed"]


@pytest.mark.unit
async def test_wake_word(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")

    await dispatcher.dispatch("c1", "wake-word-detected", {"userId": "u1", "wakeWord": "guardian"})

    assert emitter.last("c1", "wake-word-response")["response"] == "Guardian Angel at your service. What do you need?"


# ===========================
# Booking
# ===========================

@pytest.mark.unit
async def test_booking_request_confirms_and_notifies(dispatcher, emitter, bus_booking_data):
    await connect(dispatcher, "c1", "u1")
    await connect(dispatcher, "c2", "u1")

    await dispatcher.dispatch("c1", "booking-request", {"userId": "u1", "bookingData": bus_booking_data})

    assert emitter.events("c1")[-2:] == ["booking-processing", "booking-confirmed"]
    confirmed = emitter.last("c1", "booking-confirmed")
    assert confirmed["message"] == "Bus booking confirmed successfully"
    assert confirmed["storage"] == "json_fallback"
    assert emitter.last("c2", "booking-notification")["bookingId"] == confirmed["booking"]["bookingId"]


@pytest.mark.unit
async def test_invalid_booking_reports_validation_message(dispatcher, emitter, bus_booking_data):
    await connect(dispatcher, "c1", "u1")
    del bus_booking_data["to"]

    await dispatcher.dispatch("c1", "booking-request", {"userId": "u1", "bookingData": bus_booking_data})

    assert emitter.last("c1", "booking-error")["error"] == "Missing required field: to"


@pytest.mark.unit
async def test_simulation_then_confirmation(dispatcher, emitter, bus_booking_data):
    await connect(dispatcher, "c1", "u1")

    await dispatcher.dispatch("c1", "booking-simulation", {"userId": "u1", "bookingData": bus_booking_data})
    options = emitter.last("c1", "booking-options")["options"]
    assert 3 <= len(options) <= 5

    await dispatcher.dispatch("c1", "booking-confirmation", {"userId": "u1", "selectedOption": options[-1]})

    confirmed = emitter.last("c1", "booking-confirmed")
    assert confirmed["message"] == "Booking confirmed successfully"
    assert confirmed["booking"]["estimatedPrice"] == options[-1]["estimatedPrice"]


@pytest.mark.unit
async def test_confirmation_of_incomplete_option_is_rejected(dispatcher, emitter, gateway):
    await connect(dispatcher, "c1", "u1")
    await connect(dispatcher, "c2", "u1")

    await dispatcher.dispatch("c1", "booking-confirmation", {"userId": "u1", "selectedOption": {"type": "bus"}})

    assert emitter.last("c1", "booking-error")["error"] == "Missing required field: from"
    assert "booking-notification" not in emitter.events("c2")
    assert (await gateway.get_all_bookings()).value == []


# ===========================
# Emergency
# ===========================

@pytest.mark.unit
async def test_emergency_reaches_every_connection(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")
    await connect(dispatcher, "c2", "u2")
    # c3 never registered, still subscribed to the broadcast

    await dispatcher.dispatch("c1", "emergency-alert", {
        "userId": "u1",
        "emergencyType": "medical",
        "location": {"lat": 19.07, "lng": 72.87}
    })

    response = emitter.last("c1", "emergency-response")
    assert response["priority"] == "critical"
    assert response["emergency"]["type"] == "medical"

    for connection_id in ("c1", "c2", "c3"):
        broadcast = emitter.last(connection_id, "emergency-broadcast")
        assert broadcast["userId"] == "u1"
        assert broadcast["alertId"] == response["emergency"]["alertId"]


@pytest.mark.unit
async def test_emergency_without_type(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")

    await dispatcher.dispatch("c1", "emergency-alert", {"userId": "u1"})

    assert emitter.events("c1")[-1] == "emergency-error"
    assert "emergency-broadcast" not in emitter.events("c2")


@pytest.mark.unit
async def test_unknown_emergency_type_not_broadcast(dispatcher, emitter):
    await connect(dispatcher, "c1", "u1")
    await connect(dispatcher, "c2", "u2")

    await dispatcher.dispatch("c1", "emergency-alert", {"userId": "u1", "emergencyType": "alien-invasion"})

    assert emitter.last("c1", "emergency-error")["error"].startswith("Invalid emergency type: alien-invasion")
    assert "emergency-broadcast" not in emitter.events("c2")
