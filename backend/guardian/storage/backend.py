"""
Abstract storage backend interface.
Defines the contract shared by the durable and flat-file backends, plus
the query helpers both use so search and stats behave identically.

Version: 1.0.0
"""
import asyncio
import functools
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..utils import utcnow_iso

# Fields an update may never change
IMMUTABLE_BOOKING_FIELDS = ('bookingId', 'userId', 'createdAt')
IMMUTABLE_ALERT_FIELDS = ('alertId', 'userId', 'createdAt')

RECENT_BOOKINGS_LIMIT = 5


class StorageBackend(ABC):
    """
    Abstract base class for booking, preference and alert storage.

    Backends raise on failure; the gateway above them decides whether
    to fail over. Returned documents are plain dicts and never alias
    the backend's own state.
    """

    name: str = "abstract"

    @property
    @abstractmethod
    def is_healthy(self) -> bool:
        """Cached connectivity flag, cheap to read."""
        pass

    # Bookings

    @abstractmethod
    async def save_booking(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_user_bookings(
        self,
        user_id: str,
        status: Optional[str] = None,
        booking_type: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Newest created first."""
        pass

    @abstractmethod
    async def get_all_bookings(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def update_booking(self, booking_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Merge updates and stamp updatedAt. None if the booking does not exist."""
        pass

    @abstractmethod
    async def delete_booking(self, booking_id: str) -> bool:
        pass

    @abstractmethod
    async def search_bookings(self, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        pass

    async def get_booking_stats(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        if user_id:
            bookings = await self.get_user_bookings(user_id)
        else:
            bookings = await self.get_all_bookings()
        return compute_stats(bookings)

    # Preferences

    @abstractmethod
    async def save_user_preferences(self, user_id: str, preferences: Dict[str, Any]) -> bool:
        pass

    @abstractmethod
    async def get_user_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    # Alerts

    @abstractmethod
    async def save_alert(self, alert: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def get_alerts(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: Optional[int] = 50
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def update_alert(self, alert_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        pass

    async def close(self) -> None:
        return None

    @staticmethod
    async def _run_sync(func: Callable, *args, **kwargs) -> Any:
        """Run blocking I/O in the default thread pool."""
        return await asyncio.get_running_loop().run_in_executor(
            None,
            functools.partial(func, *args, **kwargs)
        )


# ===========================
# Shared query helpers
# ===========================

def _created_key(document: Dict[str, Any]) -> str:
    return document.get('createdAt') or ''


def sort_newest_first(documents: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # ISO-8601 UTC strings sort chronologically
    return sorted(documents, key=_created_key, reverse=True)


def merge_update(
    existing: Dict[str, Any],
    updates: Dict[str, Any],
    immutable: Iterable[str] = IMMUTABLE_BOOKING_FIELDS
) -> Dict[str, Any]:
    """Shallow merge that ignores immutable fields and stamps updatedAt."""
    merged = dict(existing)
    for key, value in updates.items():
        if key in immutable:
            continue
        merged[key] = value
    merged['updatedAt'] = utcnow_iso()
    return merged


def _as_date(value: Any) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).strip().replace('Z', '+00:00')).date()
    except ValueError:
        return None


def booking_date(booking: Dict[str, Any]) -> Optional[str]:
    return booking.get('date') or booking.get('departureDate')


def matches_criteria(booking: Dict[str, Any], criteria: Dict[str, Any]) -> bool:
    """
    Booking search predicate.

    Exact match on userId, type and status; case-insensitive substring on
    from and to; date matches date or departureDate; dateRange is an
    inclusive calendar-date range with optional start and end.
    """
    for field in ('userId', 'type', 'status'):
        wanted = criteria.get(field)
        if wanted and booking.get(field) != wanted:
            return False

    for field in ('from', 'to'):
        wanted = criteria.get(field)
        if wanted and str(wanted).lower() not in str(booking.get(field) or '').lower():
            return False

    wanted_date = criteria.get('date')
    if wanted_date:
        wanted = _as_date(wanted_date)
        candidates = {_as_date(booking.get('date')), _as_date(booking.get('departureDate'))}
        if wanted is None or wanted not in candidates:
            return False

    date_range = criteria.get('dateRange')
    if date_range:
        travel = _as_date(booking_date(booking))
        if travel is None:
            return False
        start = _as_date(date_range.get('start'))
        end = _as_date(date_range.get('end'))
        if start and travel < start:
            return False
        if end and travel > end:
            return False

    return True


def compute_stats(bookings: List[Dict[str, Any]]) -> Dict[str, Any]:
    by_type: Dict[str, int] = {}
    by_status: Dict[str, int] = {}
    total_value = 0

    for booking in bookings:
        by_type[booking.get('type')] = by_type.get(booking.get('type'), 0) + 1
        by_status[booking.get('status')] = by_status.get(booking.get('status'), 0) + 1
        total_value += booking.get('estimatedPrice') or 0

    return {
        'total': len(bookings),
        'byType': by_type,
        'byStatus': by_status,
        'totalValue': total_value,
        'recentBookings': sort_newest_first(bookings)[:RECENT_BOOKINGS_LIMIT]
    }


def filter_user_bookings(
    bookings: Iterable[Dict[str, Any]],
    user_id: str,
    status: Optional[str] = None,
    booking_type: Optional[str] = None,
    limit: Optional[int] = None
) -> List[Dict[str, Any]]:
    selected = [
        b for b in bookings
        if b.get('userId') == user_id
        and (not status or b.get('status') == status)
        and (not booking_type or b.get('type') == booking_type)
    ]
    selected = sort_newest_first(selected)
    return selected[:limit] if limit else selected


__all__ = [
    'StorageBackend',
    'IMMUTABLE_BOOKING_FIELDS',
    'IMMUTABLE_ALERT_FIELDS',
    'sort_newest_first',
    'merge_update',
    'matches_criteria',
    'compute_stats',
    'filter_user_bookings',
    'booking_date'
]
