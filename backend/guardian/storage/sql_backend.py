"""
Durable SQLAlchemy storage backend.
Bookings, preferences and alerts in SQLite or PostgreSQL, with a
connectivity flag maintained by engine events.

Version: 1.0.0
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine

from .backend import (
    StorageBackend,
    IMMUTABLE_ALERT_FIELDS,
    matches_criteria,
    merge_update,
    sort_newest_first
)
from ..database import (
    ConnectionHealth,
    check_db_connection,
    cleanup_db,
    create_session_factory,
    get_database_info,
    get_db_context,
    init_db
)
from ..models import Booking, EmergencyAlert, UserPreferences

logger = logging.getLogger(__name__)


class SQLBackend(StorageBackend):
    """
    SQLAlchemy implementation of StorageBackend.

    Documents are stored whole in a JSON column; filterable fields are
    copied into indexed columns. Blocking session work runs in the
    thread pool.
    """

    name = "durable"

    def __init__(self, engine: Engine, health: Optional[ConnectionHealth] = None):
        """
        Initialize the durable backend.

        Args:
            engine: Engine created by create_database_engine()
            health: Flag attached to the engine's events
        """
        self.engine = engine
        self.health = health or ConnectionHealth()
        self.SessionLocal = create_session_factory(engine)

    @property
    def is_healthy(self) -> bool:
        return self.health.healthy

    async def initialize(self) -> bool:
        """Create tables and check the connection. Never raises."""
        try:
            await self._run_sync(init_db, self.engine)
        except Exception as e:
            logger.error(f"Durable store initialization failed: {e}")
            self.health.mark_down(str(e))
            return False
        return await self.ping()

    async def ping(self) -> bool:
        return await self._run_sync(check_db_connection, self.engine, self.health)

    # ===========================
    # Bookings
    # ===========================

    def _save_booking_sync(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        with get_db_context(self.SessionLocal) as db:
            row = db.get(Booking, booking['bookingId'])
            if row is None:
                row = Booking.from_document(booking)
                db.add(row)
            else:
                row.apply_document(booking)
            return row.to_document()

    async def save_booking(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run_sync(self._save_booking_sync, booking)

    def _get_booking_sync(self, booking_id: str) -> Optional[Dict[str, Any]]:
        with get_db_context(self.SessionLocal) as db:
            row = db.get(Booking, booking_id)
            return row.to_document() if row is not None else None

    async def get_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        return await self._run_sync(self._get_booking_sync, booking_id)

    def _user_bookings_sync(
        self,
        user_id: str,
        status: Optional[str],
        booking_type: Optional[str],
        limit: Optional[int]
    ) -> List[Dict[str, Any]]:
        with get_db_context(self.SessionLocal) as db:
            query = select(Booking).where(Booking.user_id == user_id)
            if status:
                query = query.where(Booking.status == status)
            if booking_type:
                query = query.where(Booking.type == booking_type)
            query = query.order_by(Booking.created_at.desc())
            rows = db.execute(query).scalars().all()
            # createdAt in the document is authoritative for ordering
            documents = sort_newest_first(row.to_document() for row in rows)
        return documents[:limit] if limit else documents

    async def get_user_bookings(
        self,
        user_id: str,
        status: Optional[str] = None,
        booking_type: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        return await self._run_sync(self._user_bookings_sync, user_id, status, booking_type, limit)

    def _all_bookings_sync(self) -> List[Dict[str, Any]]:
        with get_db_context(self.SessionLocal) as db:
            rows = db.execute(select(Booking)).scalars().all()
            return [row.to_document() for row in rows]

    async def get_all_bookings(self) -> List[Dict[str, Any]]:
        return await self._run_sync(self._all_bookings_sync)

    def _update_booking_sync(self, booking_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with get_db_context(self.SessionLocal) as db:
            row = db.get(Booking, booking_id)
            if row is None:
                return None
            row.apply_document(merge_update(row.to_document(), updates))
            return row.to_document()

    async def update_booking(self, booking_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._run_sync(self._update_booking_sync, booking_id, updates)

    def _delete_booking_sync(self, booking_id: str) -> bool:
        with get_db_context(self.SessionLocal) as db:
            row = db.get(Booking, booking_id)
            if row is None:
                return False
            db.delete(row)
            return True

    async def delete_booking(self, booking_id: str) -> bool:
        return await self._run_sync(self._delete_booking_sync, booking_id)

    def _search_sync(self, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        with get_db_context(self.SessionLocal) as db:
            query = select(Booking)
            # Narrow on indexed columns, then apply the shared predicate
            if criteria.get('userId'):
                query = query.where(Booking.user_id == criteria['userId'])
            if criteria.get('type'):
                query = query.where(Booking.type == criteria['type'])
            if criteria.get('status'):
                query = query.where(Booking.status == criteria['status'])
            rows = db.execute(query).scalars().all()
            documents = [row.to_document() for row in rows]
        return sort_newest_first(d for d in documents if matches_criteria(d, criteria))

    async def search_bookings(self, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._run_sync(self._search_sync, criteria)

    # ===========================
    # Preferences
    # ===========================

    def _save_preferences_sync(self, user_id: str, preferences: Dict[str, Any]) -> bool:
        with get_db_context(self.SessionLocal) as db:
            row = db.get(UserPreferences, user_id)
            if row is None:
                db.add(UserPreferences(user_id=user_id, preferences=dict(preferences)))
            else:
                row.preferences = dict(preferences)
        return True

    async def save_user_preferences(self, user_id: str, preferences: Dict[str, Any]) -> bool:
        return await self._run_sync(self._save_preferences_sync, user_id, preferences)

    def _get_preferences_sync(self, user_id: str) -> Optional[Dict[str, Any]]:
        with get_db_context(self.SessionLocal) as db:
            row = db.get(UserPreferences, user_id)
            return dict(row.preferences or {}) if row is not None else None

    async def get_user_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._run_sync(self._get_preferences_sync, user_id)

    # ===========================
    # Alerts
    # ===========================

    def _save_alert_sync(self, alert: Dict[str, Any]) -> Dict[str, Any]:
        with get_db_context(self.SessionLocal) as db:
            row = db.get(EmergencyAlert, alert['alertId'])
            if row is None:
                row = EmergencyAlert.from_document(alert)
                db.add(row)
            else:
                row.apply_document(alert)
            return row.to_document()

    async def save_alert(self, alert: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run_sync(self._save_alert_sync, alert)

    def _get_alerts_sync(self, user_id: str, status: Optional[str], limit: Optional[int]) -> List[Dict[str, Any]]:
        with get_db_context(self.SessionLocal) as db:
            query = select(EmergencyAlert).where(EmergencyAlert.user_id == user_id)
            if status:
                query = query.where(EmergencyAlert.status == status)
            rows = db.execute(query).scalars().all()
            documents = sort_newest_first(row.to_document() for row in rows)
        return documents[:limit] if limit else documents

    async def get_alerts(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: Optional[int] = 50
    ) -> List[Dict[str, Any]]:
        return await self._run_sync(self._get_alerts_sync, user_id, status, limit)

    def _update_alert_sync(self, alert_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with get_db_context(self.SessionLocal) as db:
            row = db.get(EmergencyAlert, alert_id)
            if row is None:
                return None
            row.apply_document(merge_update(row.to_document(), updates, IMMUTABLE_ALERT_FIELDS))
            return row.to_document()

    async def update_alert(self, alert_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._run_sync(self._update_alert_sync, alert_id, updates)

    # ===========================
    # Health
    # ===========================

    async def health_check(self) -> Dict[str, Any]:
        connected = await self.ping()
        return {
            "status": "connected" if connected else "disconnected",
            "message": "Durable store connection healthy" if connected else "Durable store not connected",
            "info": get_database_info(self.engine, self.health)
        }

    async def close(self) -> None:
        await self._run_sync(cleanup_db, self.engine)


__all__ = ['SQLBackend']
