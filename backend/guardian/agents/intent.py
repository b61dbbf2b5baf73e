"""
Keyword intent classification for voice utterances.
Advisory only: the tag rides along with the reply and may trigger a
follow-up event, but never changes stored state.
"""
from enum import Enum
from typing import Callable, List, NamedTuple


class Intent(str, Enum):
    BOOKING = "booking"
    EMERGENCY = "emergency"
    INFORMATION = "information"
    REMINDER = "reminder"
    COMMUNICATION = "communication"
    GENERAL = "general"


class IntentRule(NamedTuple):
    intent: Intent
    matches: Callable[[str], bool]


def _any_of(*terms: str) -> Callable[[str], bool]:
    return lambda text: any(term in text for term in terms)


def _all_groups(*groups) -> Callable[[str], bool]:
    return lambda text: all(any(term in text for term in group) for group in groups)


# Evaluated in order; first match wins
INTENT_RULES: List[IntentRule] = [
    IntentRule(Intent.BOOKING, _all_groups(("book",), ("ticket", "flight", "train", "bus"))),
    IntentRule(Intent.EMERGENCY, _any_of("emergency", "help", "urgent")),
    IntentRule(Intent.INFORMATION, _any_of("weather", "news", "search")),
    IntentRule(Intent.REMINDER, _any_of("remind", "schedule", "calendar")),
    IntentRule(Intent.COMMUNICATION, _any_of("call", "message", "contact")),
]


def classify_intent(utterance: str) -> Intent:
    """
    Tag an utterance with the first matching intent.

    >>> classify_intent("Book a bus ticket, it's urgent")
    <Intent.BOOKING: 'booking'>
    """
    text = (utterance or "").lower()
    for rule in INTENT_RULES:
        if rule.matches(text):
            return rule.intent
    return Intent.GENERAL


def should_use_reasoner(message: str, keywords: List[str]) -> bool:
    """True when any reasoning keyword occurs in the message, case-insensitively."""
    text = (message or "").lower()
    return any(keyword.lower() in text for keyword in keywords)


__all__ = ['Intent', 'INTENT_RULES', 'classify_intent', 'should_use_reasoner']
