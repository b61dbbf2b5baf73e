"""
Voice command table, wake words and emergency shortcuts.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .alert_service import AlertService, emergency_message
from ..agents.orchestrator import ResponseOrchestrator

logger = logging.getLogger(__name__)

WAKE_WORD_RESPONSES = {
    'neura': "Yes, I'm here. How can I help you?",
    'guardian': "Guardian Angel at your service. What do you need?",
    'angel': "I'm listening. What can I do for you?",
    'hey neura': "Hello! I'm ready to assist you.",
    'ok guardian': "Yes, I'm here. How may I help?"
}
DEFAULT_WAKE_RESPONSE = "I'm here. How can I assist you?"

DEFAULT_PASSENGER = {'name': 'User', 'age': 30}
DEFAULT_TIME = '10:00'


def wake_word_response(wake_word: str) -> Dict[str, Any]:
    """Canned reply for a wake word, exact case-insensitive match."""
    key = (wake_word or '').strip().lower()
    return {
        'response': WAKE_WORD_RESPONSES.get(key, DEFAULT_WAKE_RESPONSE),
        'commandType': 'wake_word',
        'wakeWord': wake_word,
        'isListening': True
    }


def draft_booking(parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Booking data from voice parameters, with per-type defaults filled in."""
    booking_type = parameters.get('type') or 'bus'
    draft = {
        'type': booking_type,
        'from': parameters.get('from'),
        'to': parameters.get('to'),
        'date': parameters.get('date'),
        'passengers': parameters.get('passengers') or [dict(DEFAULT_PASSENGER)]
    }

    if booking_type == 'train':
        draft['class'] = parameters.get('class') or '3ac'
        draft['time'] = parameters.get('time') or DEFAULT_TIME
    elif booking_type == 'flight':
        draft['departureDate'] = draft['date']
        draft['class'] = parameters.get('class') or 'economy'
    else:
        draft['time'] = parameters.get('time') or DEFAULT_TIME
        draft['seatType'] = parameters.get('seatType') or 'standard'

    return draft


class VoiceCommandService:
    """
    Dispatches named voice commands.

    Unknown names get an explanatory reply listing the valid ones.
    """

    def __init__(self, orchestrator: ResponseOrchestrator, alerts: AlertService):
        self.orchestrator = orchestrator
        self.alerts = alerts
        self._commands: Dict[str, Callable[[str, Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            'book_ticket': self._book_ticket,
            'get_weather': self._get_weather,
            'set_reminder': self._set_reminder,
            'emergency_alert': self._emergency_alert,
            'get_news': self._get_news
        }

    @property
    def command_names(self):
        return list(self._commands)

    async def process_command(
        self,
        command: str,
        user_id: str,
        parameters: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        handler = self._commands.get(command)
        if handler is None:
            return {
                'response': (
                    f'Command "{command}" is not recognized. '
                    f'Available commands: {", ".join(self._commands)}'
                ),
                'commandType': 'unknown'
            }
        return await handler(user_id, parameters or {})

    async def emergency(
        self,
        user_id: str,
        emergency_type: str,
        location: Any = None,
        additional_info: Optional[str] = None,
        priority: str = "high"
    ) -> Dict[str, Any]:
        alert = await self.alerts.raise_alert(user_id, emergency_type, location, additional_info, priority)
        return {
            'response': emergency_message(alert['type']),
            'commandType': 'emergency',
            'emergency': alert,
            'nextAction': 'notify_emergency_contacts'
        }

    # ===========================
    # Command handlers
    # ===========================

    async def _book_ticket(self, user_id: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        booking_data = draft_booking(parameters)
        return {
            'response': (
                f"I'll help you book a {booking_data['type']} ticket from "
                f"{booking_data['from']} to {booking_data['to']}. Let me check available options."
            ),
            'commandType': 'booking',
            'bookingData': booking_data,
            'nextAction': 'simulate_booking'
        }

    async def _get_weather(self, user_id: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        location = parameters.get('location')
        try:
            reply = await self.orchestrator.web_search(f"What's the current weather in {location}?")
            response = reply.response
        except Exception as e:
            logger.warning(f"Weather lookup failed: {e}")
            response = f"I couldn't get the weather information for {location}. Please try again later."
        return {'response': response, 'commandType': 'weather', 'location': location}

    async def _set_reminder(self, user_id: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        reminder = {
            'userId': user_id,
            'title': parameters.get('title') or parameters.get('message'),
            'datetime': parameters.get('datetime'),
            'type': parameters.get('type') or 'general'
        }
        return {
            'response': f'I\'ve set a reminder for "{reminder["title"]}" at {reminder["datetime"]}.',
            'commandType': 'reminder',
            'reminder': reminder,
            'nextAction': 'save_reminder'
        }

    async def _emergency_alert(self, user_id: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        return await self.emergency(
            user_id,
            parameters.get('type') or 'general',
            parameters.get('location'),
            parameters.get('info')
        )

    async def _get_news(self, user_id: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        category = parameters.get('category')
        query = f"Latest {category} news" if category else "Latest news headlines"
        try:
            reply = await self.orchestrator.web_search(query)
            response = reply.response
        except Exception as e:
            logger.warning(f"News lookup failed: {e}")
            response = "I couldn't fetch the latest news right now. Please try again later."
        return {'response': response, 'commandType': 'news', 'category': category}


__all__ = [
    'VoiceCommandService',
    'WAKE_WORD_RESPONSES',
    'DEFAULT_WAKE_RESPONSE',
    'draft_booking',
    'wake_word_response'
]
