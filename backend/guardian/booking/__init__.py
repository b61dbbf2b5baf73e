"""
Booking domain: validation, pricing, confirmation and option simulation.
"""

from .validator import BookingValidator, generate_booking_id, generate_confirmation_code
from .simulator import BookingSimulator
from .service import BookingService

__all__ = [
    'BookingValidator',
    'BookingSimulator',
    'BookingService',
    'generate_booking_id',
    'generate_confirmation_code'
]
