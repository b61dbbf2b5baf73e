"""
Booking validation, pricing and confirmation.

Type-specific required fields, date and passenger normalization, and the
deterministic fare and duration estimates attached to every booking.

Version: 1.0.0
"""
import logging
import math
import secrets
import string
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from ..errors import ValidationError
from ..models.schemas import BookingStatus, BookingType
from ..utils import utcnow_iso

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: Dict[str, List[str]] = {
    BookingType.BUS.value: ['from', 'to', 'date', 'time', 'passengers', 'seatType'],
    BookingType.TRAIN.value: ['from', 'to', 'date', 'time', 'passengers', 'class'],
    BookingType.FLIGHT.value: ['from', 'to', 'departureDate', 'passengers', 'class']
}

# Fields the server owns on a confirmed booking
SERVER_FIELDS = frozenset({
    'bookingId', 'userId', 'status', 'createdAt', 'updatedAt',
    'confirmationCode', 'paymentStatus', 'cancellationReason', 'cancelledAt'
})

# Derived from the type and the validated input, never set directly
DERIVED_FIELDS = frozenset({'type', 'estimatedPrice', 'duration', 'tripType'})

# Fields a client may resubmit on update; they go back through validation
BOOKING_INPUT_FIELDS = frozenset({
    'from', 'to', 'date', 'time', 'departureDate', 'returnDate', 'passengers',
    'class', 'seatType', 'operatorPreference', 'trainType', 'seatPreference',
    'airlinePreference', 'mealPreference'
})

TRAIN_CLASSES = ['sleeper', '3ac', '2ac', '1ac', 'cc', 'ec']
FLIGHT_CLASSES = ['economy', 'premium-economy', 'business', 'first']

BUS_BASE_FARE = 500
TRAIN_BASE_FARES = {
    'sleeper': 300,
    '3ac': 800,
    '2ac': 1200,
    '1ac': 2000,
    'cc': 600,
    'ec': 400
}
FLIGHT_BASE_FARES = {
    'economy': 5000,
    'premium-economy': 8000,
    'business': 15000,
    'first': 25000
}

# Symmetric city-pair distance multipliers
DISTANCE_MULTIPLIERS = {
    frozenset(('delhi', 'mumbai')): 1.5,
    frozenset(('delhi', 'bangalore')): 2.0,
    frozenset(('mumbai', 'bangalore')): 1.2,
    frozenset(('delhi', 'kolkata')): 1.8,
    frozenset(('mumbai', 'kolkata')): 2.2,
    frozenset(('bangalore', 'kolkata')): 2.5
}

PREMIUM_SEAT_MULTIPLIER = 1.5
ROUND_TRIP_MULTIPLIER = 1.8
EXPRESS_TRAIN_MULTIPLIER = 0.8

_ID_ALPHABET = string.digits + string.ascii_uppercase


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _random_code(length: int) -> str:
    return ''.join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def generate_booking_id() -> str:
    """NX + last six digits of epoch millis + four random base-36 characters."""
    millis = str(int(time.time() * 1000))
    return f"NX{millis[-6:]}{_random_code(4)}"


def generate_confirmation_code() -> str:
    return _random_code(6)


def get_distance_multiplier(origin: str, destination: str) -> float:
    key = frozenset((origin.strip().lower(), destination.strip().lower()))
    return DISTANCE_MULTIPLIERS.get(key, 1.0)


def passenger_type(age: int) -> str:
    if age < 2:
        return 'infant'
    if age < 12:
        return 'child'
    if age >= 60:
        return 'senior'
    return 'adult'


class BookingValidator:
    """
    Validates booking requests and builds confirmed booking documents.

    ``today`` is injectable so date checks are testable.
    """

    def __init__(self, today: Optional[Callable[[], date]] = None):
        self._today = today or date.today
        self._validators = {
            BookingType.BUS.value: self._validate_bus,
            BookingType.TRAIN.value: self._validate_train,
            BookingType.FLIGHT.value: self._validate_flight
        }

    def validate(self, booking_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate booking data and attach price and duration.

        Args:
            booking_data: Raw booking request, must include ``type``

        Returns:
            Normalized booking fields

        Raises:
            ValidationError: On the first missing or malformed field
        """
        if not isinstance(booking_data, dict):
            raise ValidationError("Booking data must be an object")

        booking_type = booking_data.get('type')
        validator = self._validators.get(booking_type)
        if validator is None:
            raise ValidationError(f"Invalid booking type: {booking_type}")

        self._check_required_fields(booking_data, REQUIRED_FIELDS[booking_type])
        return validator(booking_data)

    def confirm(self, validated: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        """
        Build a confirmed booking document from validated fields.

        Bookings are confirmed immediately; payment stays pending.
        """
        timestamp = utcnow_iso()
        return {
            **validated,
            'bookingId': generate_booking_id(),
            'userId': user_id,
            'status': BookingStatus.CONFIRMED.value,
            'createdAt': timestamp,
            'updatedAt': timestamp,
            'confirmationCode': generate_confirmation_code(),
            'paymentStatus': 'pending'
        }

    def validate_option(self, option: Dict[str, Any]) -> Dict[str, Any]:
        """
        Check a simulated option before it is confirmed.

        The option keeps its simulated price, but its type's required
        fields, passengers and travel date are checked again since the
        option comes back from the client.
        """
        if not isinstance(option, dict):
            raise ValidationError("Booking data must be an object")

        booking_type = option.get('type')
        if booking_type not in REQUIRED_FIELDS:
            raise ValidationError(f"Invalid booking type: {booking_type}")
        self._check_required_fields(option, REQUIRED_FIELDS[booking_type])

        price = option.get('estimatedPrice')
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
            raise ValidationError("Invalid estimated price")

        date_field = 'departureDate' if booking_type == BookingType.FLIGHT.value else 'date'
        validated = {key: value for key, value in option.items() if key not in SERVER_FIELDS}
        validated['passengers'] = self._validate_passengers(option['passengers'])
        validated[date_field] = self._validate_date(option[date_field])
        return validated

    def validate_update(self, existing: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Resolve an update request against an existing booking.

        Server-owned and derived fields are dropped. Booking fields, given
        at the top level or in a nested ``bookingData``, are revalidated
        with the existing booking's type and the normalized result (price
        included) is merged in. Anything else passes through as is.

        Raises:
            ValidationError: The booking is cancelled, nothing updatable
                was given, or the revalidated booking is invalid
        """
        if existing.get('status') == BookingStatus.CANCELLED.value:
            raise ValidationError("Cancelled bookings cannot be updated")

        resolved = {
            key: value for key, value in updates.items()
            if key not in SERVER_FIELDS and key not in DERIVED_FIELDS
        }

        booking_data = resolved.pop('bookingData', None) or {}
        if not isinstance(booking_data, dict):
            raise ValidationError("bookingData must be an object")

        changes = {key: value for key, value in booking_data.items() if key in BOOKING_INPUT_FIELDS}
        for key in BOOKING_INPUT_FIELDS.intersection(resolved):
            changes[key] = resolved.pop(key)

        if changes:
            merged = {key: value for key, value in existing.items() if key in BOOKING_INPUT_FIELDS}
            merged.update(changes)
            merged['type'] = existing.get('type')
            resolved.update(self.validate(merged))

        if not resolved:
            raise ValidationError("No updatable fields provided")
        return resolved

    # ===========================
    # Type-specific validation
    # ===========================

    def _validate_bus(self, data: Dict[str, Any]) -> Dict[str, Any]:
        passengers = self._validate_passengers(data['passengers'])
        seat_type = str(data['seatType']).strip()
        multiplier = get_distance_multiplier(data['from'], data['to'])
        seat_multiplier = PREMIUM_SEAT_MULTIPLIER if seat_type == 'premium' else 1

        return {
            'type': BookingType.BUS.value,
            'from': data['from'].strip(),
            'to': data['to'].strip(),
            'date': self._validate_date(data['date']),
            'time': str(data['time']).strip(),
            'passengers': passengers,
            'seatType': seat_type,
            'operatorPreference': data.get('operatorPreference') or 'any',
            'estimatedPrice': _round_half_up(BUS_BASE_FARE * multiplier * len(passengers) * seat_multiplier),
            'duration': f"{_round_half_up(multiplier * 8)} hours"
        }

    def _validate_train(self, data: Dict[str, Any]) -> Dict[str, Any]:
        passengers = self._validate_passengers(data['passengers'])
        travel_class = self._validate_class(data['class'], TRAIN_CLASSES, 'train')
        train_type = data.get('trainType') or 'express'
        multiplier = get_distance_multiplier(data['from'], data['to'])
        type_multiplier = EXPRESS_TRAIN_MULTIPLIER if train_type == 'express' else 1

        return {
            'type': BookingType.TRAIN.value,
            'from': data['from'].strip(),
            'to': data['to'].strip(),
            'date': self._validate_date(data['date']),
            'time': str(data['time']).strip(),
            'passengers': passengers,
            'class': travel_class,
            'trainType': train_type,
            'seatPreference': data.get('seatPreference') or 'any',
            'estimatedPrice': _round_half_up(
                TRAIN_BASE_FARES.get(travel_class, 500) * multiplier * len(passengers)
            ),
            'duration': f"{_round_half_up(multiplier * 6 * type_multiplier)} hours"
        }

    def _validate_flight(self, data: Dict[str, Any]) -> Dict[str, Any]:
        passengers = self._validate_passengers(data['passengers'])
        travel_class = self._validate_class(data['class'], FLIGHT_CLASSES, 'flight')
        return_date = self._validate_date(data['returnDate']) if data.get('returnDate') else None
        multiplier = get_distance_multiplier(data['from'], data['to'])
        trip_multiplier = ROUND_TRIP_MULTIPLIER if return_date else 1

        return {
            'type': BookingType.FLIGHT.value,
            'from': data['from'].strip(),
            'to': data['to'].strip(),
            'departureDate': self._validate_date(data['departureDate']),
            'returnDate': return_date,
            'passengers': passengers,
            'class': travel_class,
            'airlinePreference': data.get('airlinePreference') or 'any',
            'mealPreference': data.get('mealPreference') or 'standard',
            'tripType': 'round-trip' if return_date else 'one-way',
            'estimatedPrice': _round_half_up(
                FLIGHT_BASE_FARES.get(travel_class, 5000) * multiplier * len(passengers) * trip_multiplier
            ),
            'duration': f"{_round_half_up(multiplier * 1.5 * 60)} minutes"
        }

    # ===========================
    # Field helpers
    # ===========================

    @staticmethod
    def _check_required_fields(data: Dict[str, Any], required: List[str]) -> None:
        for field in required:
            value = data.get(field)
            if value is None or (isinstance(value, (str, list)) and not value):
                raise ValidationError(f"Missing required field: {field}")

        for field in ('from', 'to'):
            if field in required and not isinstance(data[field], str):
                raise ValidationError(f"Invalid value for {field}")

    def _validate_date(self, value: Any) -> str:
        """Parse a date, reject the past, return YYYY-MM-DD."""
        parsed = None
        if isinstance(value, date):
            parsed = value.date() if isinstance(value, datetime) else value
        elif isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00')).date()
            except ValueError:
                parsed = None

        if parsed is None:
            raise ValidationError(f"Invalid date format: {value}")

        if parsed < self._today():
            raise ValidationError("Booking date cannot be in the past")

        return parsed.isoformat()

    @staticmethod
    def _validate_passengers(passengers: Any) -> List[Dict[str, Any]]:
        if not isinstance(passengers, list) or not passengers:
            raise ValidationError("At least one passenger is required")

        validated = []
        for passenger in passengers:
            if not isinstance(passenger, dict):
                raise ValidationError("Each passenger must have name and age")

            name = passenger.get('name')
            age = passenger.get('age')
            if not name or not str(name).strip() or age is None or age == '':
                raise ValidationError("Each passenger must have name and age")

            try:
                age = int(age)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid passenger age: {passenger.get('age')}")

            if age < 0:
                raise ValidationError(f"Invalid passenger age: {age}")

            validated.append({
                'name': str(name).strip(),
                'age': age,
                'type': passenger_type(age),
                'id': passenger.get('id')
            })

        return validated

    @staticmethod
    def _validate_class(value: Any, allowed: List[str], kind: str) -> str:
        normalized = str(value).strip().lower()
        if normalized not in allowed:
            raise ValidationError(f"Invalid {kind} class: {value}")
        return normalized


__all__ = [
    'BookingValidator',
    'BOOKING_INPUT_FIELDS',
    'DERIVED_FIELDS',
    'REQUIRED_FIELDS',
    'SERVER_FIELDS',
    'TRAIN_CLASSES',
    'FLIGHT_CLASSES',
    'generate_booking_id',
    'generate_confirmation_code',
    'get_distance_multiplier',
    'passenger_type'
]
