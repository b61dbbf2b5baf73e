"""
Tests for named voice commands, wake words and voice booking drafts.
"""
import pytest

from guardian.agents import ResponseOrchestrator
from guardian.booking import BookingValidator
from guardian.services import AlertService, VoiceCommandService, draft_booking, wake_word_response


@pytest.fixture
def voice_commands(fake_provider_factory, conversation_store, provider_config, gateway):
    providers = [
        fake_provider_factory("deepseek", reply="llm"),
        fake_provider_factory("openai", reply="llm"),
        fake_provider_factory("web_search", reply="Sunny, 31 degrees")
    ]
    orchestrator = ResponseOrchestrator(providers, conversation_store, provider_config)
    return VoiceCommandService(orchestrator, AlertService(gateway))


@pytest.mark.unit
async def test_unknown_command_lists_valid_ones(voice_commands):
    result = await voice_commands.process_command("dance", "u1")

    assert result["commandType"] == "unknown"
    assert "dance" in result["response"]
    for name in voice_commands.command_names:
        assert name in result["response"]


@pytest.mark.unit
async def test_weather_uses_web_tier(voice_commands):
    result = await voice_commands.process_command("get_weather", "u1", {"location": "Pune"})

    assert result == {"response": "Sunny, 31 degrees", "commandType": "weather", "location": "Pune"}


@pytest.mark.unit
async def test_news_degrades_when_web_fails(voice_commands):
    voice_commands.orchestrator.providers[-1].error = RuntimeError("offline")

    result = await voice_commands.process_command("get_news", "u1", {"category": "sports"})

    assert result["commandType"] == "news"
    assert "couldn't fetch" in result["response"]


@pytest.mark.unit
async def test_book_ticket_drafts_booking(voice_commands):
    result = await voice_commands.process_command(
        "book_ticket", "u1", {"type": "train", "from": "Delhi", "to": "Agra", "date": "2099-03-01"}
    )

    assert result["commandType"] == "booking"
    assert result["nextAction"] == "simulate_booking"
    assert result["bookingData"]["class"] == "3ac"
    assert "from Delhi to Agra" in result["response"]


@pytest.mark.unit
async def test_set_reminder(voice_commands):
    result = await voice_commands.process_command(
        "set_reminder", "u1", {"title": "Take medicine", "datetime": "2099-01-01T09:00:00Z"}
    )

    assert result["reminder"]["userId"] == "u1"
    assert result["reminder"]["type"] == "general"
    assert result["nextAction"] == "save_reminder"


@pytest.mark.unit
async def test_emergency_command_raises_alert(voice_commands, gateway):
    result = await voice_commands.process_command("emergency_alert", "u1", {"type": "fire", "location": "Home"})

    assert result["commandType"] == "emergency"
    assert result["emergency"]["type"] == "fire"
    assert result["response"].startswith("Emergency alert activated for fire.")
    assert len((await gateway.get_alerts("u1")).value) == 1


@pytest.mark.unit
@pytest.mark.parametrize("booking_type", ["bus", "train", "flight"])
def test_drafts_pass_validation(booking_type):
    draft = draft_booking({"type": booking_type, "from": "Delhi", "to": "Mumbai", "date": "2099-05-05"})
    assert BookingValidator().validate(draft)["type"] == booking_type


@pytest.mark.unit
def test_draft_defaults_to_bus_with_one_passenger():
    draft = draft_booking({"from": "Delhi", "to": "Jaipur"})

    assert draft["type"] == "bus"
    assert draft["seatType"] == "standard"
    assert draft["passengers"] == [{"name": "User", "age": 30}]


@pytest.mark.unit
@pytest.mark.parametrize("wake_word,expected", [
    ("Neura", "Yes, I'm here. How can I help you?"),
    ("  OK Guardian ", "Yes, I'm here. How may I help?"),
    ("computer", "I'm here. How can I assist you?"),
])
def test_wake_words(wake_word, expected):
    result = wake_word_response(wake_word)

    assert result["response"] == expected
    assert result["isListening"] is True
    assert result["commandType"] == "wake_word"
