"""
Database models package.
Exports all SQLAlchemy models for the application.

Version: 1.0.0
"""

from .booking import Booking
from .preferences import UserPreferences
from .alert import EmergencyAlert

__all__ = [
    'Booking',
    'UserPreferences',
    'EmergencyAlert'
]
