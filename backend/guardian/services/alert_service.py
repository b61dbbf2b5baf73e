"""
Emergency alert service.
Builds, persists and transitions emergency alerts.
"""
import logging
import secrets
import time
from typing import Any, Dict, List, Optional

from ..errors import NotFoundError, StorageError, ValidationError
from ..models.schemas import AlertStatus
from ..storage import StorageGateway
from ..utils import utcnow_iso

logger = logging.getLogger(__name__)

ALERT_TYPES = ('medical', 'fire', 'police', 'general')


def generate_alert_id() -> str:
    # Millis alone collide when two alerts land in the same tick
    return f"EMG{int(time.time() * 1000)}{secrets.token_hex(2).upper()}"


def emergency_message(emergency_type: str) -> str:
    return f"Emergency alert activated for {emergency_type}. Help is on the way. Stay calm and safe."


class AlertService:
    """
    Emergency alerts are never deleted. A failed save does not stop the
    alert from being delivered; the caller sees ``persisted: False``.
    """

    def __init__(self, gateway: StorageGateway):
        self.gateway = gateway

    async def raise_alert(
        self,
        user_id: str,
        emergency_type: str,
        location: Any = None,
        additional_info: Optional[str] = None,
        priority: str = "high"
    ) -> Dict[str, Any]:
        if not emergency_type:
            raise ValidationError("emergencyType is required")
        emergency_type = str(emergency_type).strip().lower()
        if emergency_type not in ALERT_TYPES:
            raise ValidationError(
                f"Invalid emergency type: {emergency_type}. Expected one of: {', '.join(ALERT_TYPES)}"
            )

        timestamp = utcnow_iso()
        alert = {
            'alertId': generate_alert_id(),
            'userId': user_id,
            'type': emergency_type,
            'location': location,
            'additionalInfo': additional_info,
            'status': AlertStatus.ACTIVE.value,
            'priority': priority,
            'responders': [],
            'timestamp': timestamp,
            'createdAt': timestamp,
            'updatedAt': timestamp
        }

        logger.critical(
            f"EMERGENCY ALERT: {emergency_type} for user {user_id} at {location}",
            extra={"user_id": user_id, "alert_id": alert['alertId']}
        )

        result = await self.gateway.save_alert(alert)
        if not result.success:
            logger.error(f"Emergency alert {alert['alertId']} could not be persisted")
        alert['persisted'] = result.success
        return alert

    async def list_alerts(self, user_id: str, status: Optional[str] = None, limit: Optional[int] = 50) -> List[Dict[str, Any]]:
        result = await self.gateway.get_alerts(user_id, status=status, limit=limit)
        if not result.success:
            raise StorageError("Failed to retrieve alerts")
        return result.value

    async def update_status(
        self,
        alert_id: str,
        user_id: str,
        status: str,
        note: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Move one of the user's active alerts to resolved or cancelled.

        Both are final; a closed alert is never reopened.
        """
        if status not in (AlertStatus.RESOLVED.value, AlertStatus.CANCELLED.value):
            raise ValidationError(f"Invalid alert status: {status}")

        owned = await self.list_alerts(user_id, limit=None)
        current = next((a for a in owned if a.get('alertId') == alert_id), None)
        if current is None:
            raise NotFoundError("Alert not found")
        if current.get('status') != AlertStatus.ACTIVE.value:
            raise ValidationError(f"Alert is already {current.get('status')}")

        updates = {'status': status}
        if status == AlertStatus.RESOLVED.value:
            updates['resolvedAt'] = utcnow_iso()
        if note:
            updates['note'] = note

        result = await self.gateway.update_alert(alert_id, updates)
        if not result.success:
            raise StorageError("Failed to update alert")
        if result.value is None:
            raise NotFoundError("Alert not found")
        return result.value


__all__ = ['AlertService', 'ALERT_TYPES', 'emergency_message', 'generate_alert_id']
