"""
Booking service.
Create, read, update, cancel and simulate bookings through the storage
gateway. Shared by the REST routes and the WebSocket dispatcher.

Version: 1.0.0
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from .simulator import BookingSimulator
from .validator import BookingValidator
from ..errors import AuthorizationError, NotFoundError, StorageError, ValidationError
from ..models.schemas import BookingStatus
from ..storage import StorageGateway, StorageResult
from ..utils import utcnow_iso

logger = logging.getLogger(__name__)


class BookingService:
    """
    Booking operations with ownership checks.

    Bookings are never hard-deleted; cancellation is a status change
    and cancelling twice returns the already-cancelled booking as is.
    """

    def __init__(
        self,
        gateway: StorageGateway,
        validator: Optional[BookingValidator] = None,
        simulator: Optional[BookingSimulator] = None
    ):
        self.gateway = gateway
        self.validator = validator or BookingValidator()
        self.simulator = simulator or BookingSimulator()

    @staticmethod
    def _unwrap(result: StorageResult, action: str) -> Any:
        if not result.success:
            raise StorageError(f"Failed to {action}", details={"attempts": result.attempts})
        if result.degraded:
            logger.warning(f"{action} served by {result.backend}", extra={"backend": result.backend})
        return result.value

    async def _persist(self, booking: Dict[str, Any]) -> Tuple[Dict[str, Any], StorageResult]:
        result = await self.gateway.save_booking(booking)
        saved = self._unwrap(result, "save booking")
        logger.info(
            f"Booking {booking['bookingId']} saved to {result.backend}",
            extra={"booking_id": booking['bookingId'], "user_id": booking['userId']}
        )
        return saved, result

    async def create(self, user_id: str, booking_data: Dict[str, Any]) -> Tuple[Dict[str, Any], StorageResult]:
        """
        Validate, confirm and persist a new booking.

        Raises:
            ValidationError: Booking data is invalid
            StorageError: Neither backend accepted the write
        """
        validated = self.validator.validate(booking_data)
        booking = self.validator.confirm(validated, user_id)
        return await self._persist(booking)

    async def confirm_option(self, user_id: str, option: Dict[str, Any]) -> Tuple[Dict[str, Any], StorageResult]:
        """
        Confirm a simulated option as returned by simulate().

        Server-owned fields sent back by the client are discarded.

        Raises:
            ValidationError: The option is missing fields its type requires
        """
        booking = self.validator.confirm(self.validator.validate_option(option), user_id)
        return await self._persist(booking)

    def simulate(self, booking_data: Dict[str, Any]) -> List[Dict[str, Any]]:
        validated = self.validator.validate(booking_data)
        return self.simulator.generate_options(validated)

    async def get(self, booking_id: str) -> Dict[str, Any]:
        booking = self._unwrap(await self.gateway.get_booking(booking_id), "retrieve booking")
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    async def get_owned(self, booking_id: str, user_id: str, action: str = "update") -> Dict[str, Any]:
        booking = await self.get(booking_id)
        if booking.get('userId') != user_id:
            logger.warning(
                f"User {user_id} attempted to {action} booking {booking_id} owned by another user",
                extra={"booking_id": booking_id, "user_id": user_id}
            )
            raise AuthorizationError(f"Unauthorized to {action} this booking")
        return booking

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[str] = None,
        booking_type: Optional[str] = None,
        limit: Optional[int] = 50
    ) -> List[Dict[str, Any]]:
        result = await self.gateway.get_user_bookings(user_id, status=status, booking_type=booking_type, limit=limit)
        return self._unwrap(result, "retrieve user bookings")

    async def update(self, booking_id: str, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply an owner's update.

        Raises:
            NotFoundError: Unknown booking
            AuthorizationError: Caller does not own the booking
            ValidationError: The booking is cancelled or the updated fields are invalid
        """
        existing = await self.get_owned(booking_id, user_id, "update")
        resolved = self.validator.validate_update(existing, updates or {})

        updated = self._unwrap(await self.gateway.update_booking(booking_id, resolved), "update booking")
        if updated is None:
            raise NotFoundError("Booking not found")
        return updated

    async def cancel(self, booking_id: str, user_id: str, reason: str = "User cancellation") -> Dict[str, Any]:
        existing = await self.get_owned(booking_id, user_id, "cancel")

        if existing.get('status') == BookingStatus.CANCELLED.value:
            logger.info(f"Booking {booking_id} already cancelled")
            return existing

        cancelled = self._unwrap(
            await self.gateway.update_booking(booking_id, {
                'status': BookingStatus.CANCELLED.value,
                'cancellationReason': reason,
                'cancelledAt': utcnow_iso()
            }),
            "cancel booking"
        )
        if cancelled is None:
            raise NotFoundError("Booking not found")

        logger.info(f"Booking {booking_id} cancelled", extra={"booking_id": booking_id, "user_id": user_id})
        return cancelled

    async def search(self, criteria: Dict[str, Any], user_id: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """
        Raises:
            ValidationError: dateRange is not an object of start/end dates
        """
        date_range = criteria.get('dateRange')
        if date_range is not None:
            if not isinstance(date_range, dict) or set(date_range) - {'start', 'end'}:
                raise ValidationError("dateRange must be an object with start and/or end")
            if any(value is not None and not isinstance(value, str) for value in date_range.values()):
                raise ValidationError("dateRange start and end must be dates")

        search_criteria = {**criteria, 'userId': user_id} if user_id else dict(criteria)
        bookings = self._unwrap(await self.gateway.search_bookings(search_criteria), "search bookings")
        return bookings, search_criteria

    async def stats(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        return self._unwrap(await self.gateway.get_booking_stats(user_id), "retrieve booking statistics")

    async def save_preferences(self, user_id: str, preferences: Dict[str, Any]) -> bool:
        return self._unwrap(
            await self.gateway.save_user_preferences(user_id, preferences or {}),
            "save user preferences"
        )

    async def get_preferences(self, user_id: str) -> Dict[str, Any]:
        preferences = self._unwrap(await self.gateway.get_user_preferences(user_id), "retrieve user preferences")
        return preferences or {}


__all__ = ['BookingService']
