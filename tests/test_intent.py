"""
Tests for keyword intent classification and reasoner escalation.
"""
import pytest

from guardian.agents import Intent, classify_intent, should_use_reasoner
from guardian.config.provider_settings import DEFAULT_REASONING_KEYWORDS


@pytest.mark.unit
@pytest.mark.parametrize("utterance,expected", [
    ("Book a train to Mumbai", Intent.BOOKING),
    ("Please BOOK my Flight", Intent.BOOKING),
    ("I need help now", Intent.EMERGENCY),
    ("What's the weather like?", Intent.INFORMATION),
    ("Remind me at five", Intent.REMINDER),
    ("Call my sister", Intent.COMMUNICATION),
    ("Tell me a joke", Intent.GENERAL),
    ("", Intent.GENERAL),
])
def test_classify_intent(utterance, expected):
    assert classify_intent(utterance) == expected


@pytest.mark.unit
def test_first_matching_rule_wins():
    # Booking outranks emergency, emergency outranks information
    assert classify_intent("Urgent: book a bus ticket") == Intent.BOOKING
    assert classify_intent("urgent news please") == Intent.EMERGENCY


@pytest.mark.unit
def test_book_alone_is_not_booking():
    assert classify_intent("I am reading a book") == Intent.GENERAL


@pytest.mark.unit
def test_reasoner_keywords_case_insensitive():
    assert should_use_reasoner("Explain this STEP BY STEP", DEFAULT_REASONING_KEYWORDS)
    assert should_use_reasoner("Can you Calculate 2+2?", DEFAULT_REASONING_KEYWORDS)
    assert not should_use_reasoner("Hello there", DEFAULT_REASONING_KEYWORDS)
    assert not should_use_reasoner("analyze", [])
