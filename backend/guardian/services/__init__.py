"""
Services module for Neura Guardian.
Emergency alerts and the voice command table.
"""

from .alert_service import AlertService, ALERT_TYPES, emergency_message
from .voice_commands import VoiceCommandService, draft_booking, wake_word_response

__all__ = [
    # Alerts
    'AlertService',
    'ALERT_TYPES',
    'emergency_message',

    # Voice
    'VoiceCommandService',
    'draft_booking',
    'wake_word_response',
]
