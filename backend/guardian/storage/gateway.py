"""
Storage gateway.
One CRUD and search surface over the durable and flat-file backends,
with health-checked failover and an explicit outcome for every call.

Version: 1.0.0
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .backend import StorageBackend
from .json_backend import JSONFileBackend
from ..utils.telemetry import (
    track_storage_failover,
    track_storage_operation,
    update_durable_store_health
)

logger = logging.getLogger(__name__)


@dataclass
class StorageResult:
    """
    Outcome of one gateway operation.

    Attributes:
        success: False only when every backend failed
        value: Operation result (document, list, bool, None for absent)
        backend: Name of the backend that produced the value
        failed_over: True when the durable backend was tried and failed
        error: Failure description when success is False

    Example:
        result = await gateway.save_booking(booking)
        if result.success and result.backend == "json_fallback":
            ...  # landed in the degraded backend
    """
    success: bool
    value: Any = None
    backend: Optional[str] = None
    failed_over: bool = False
    error: Optional[str] = None
    attempts: List[str] = field(default_factory=list)

    @classmethod
    def stored(cls, value: Any, backend: str, failed_over: bool = False, attempts: List[str] = None) -> "StorageResult":
        return cls(success=True, value=value, backend=backend, failed_over=failed_over, attempts=attempts or [backend])

    @classmethod
    def failed(cls, error: str, attempts: List[str] = None) -> "StorageResult":
        return cls(success=False, error=error, attempts=attempts or [])

    @property
    def degraded(self) -> bool:
        """Value came from the flat-file backend."""
        return self.success and self.backend == JSONFileBackend.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "backend": self.backend,
            "failedOver": self.failed_over,
            "error": self.error
        }


class StorageGateway:
    """
    Failover wrapper around a durable backend and a flat-file backend.

    Per operation:
    - durable flag healthy: try durable; on an exception retry once on
      the flat-file backend
    - durable flag unhealthy (or no durable backend): flat-file directly
    - flat-file failure: StorageResult.failed, never an exception

    Writes that land in the flat-file backend stay there until
    reconcile() is called explicitly.
    """

    def __init__(
        self,
        fallback: JSONFileBackend,
        durable: Optional[StorageBackend] = None
    ):
        self.durable = durable
        self.fallback = fallback

        logger.info(
            f"StorageGateway initialized "
            f"(durable={'yes' if durable else 'no'}, fallback={fallback.name})"
        )

    @property
    def durable_healthy(self) -> bool:
        return self.durable is not None and self.durable.is_healthy

    @property
    def active_backend(self) -> str:
        return self.durable.name if self.durable_healthy else self.fallback.name

    async def _execute(self, operation: str, *args, **kwargs) -> StorageResult:
        attempts: List[str] = []
        failed_over = False

        if self.durable_healthy:
            attempts.append(self.durable.name)
            try:
                value = await getattr(self.durable, operation)(*args, **kwargs)
                track_storage_operation(self.durable.name, operation, True)
                return StorageResult.stored(value, self.durable.name, attempts=attempts)
            except Exception as e:
                track_storage_operation(self.durable.name, operation, False)
                track_storage_failover(operation)
                failed_over = True
                logger.error(
                    f"Storage operation {operation} failed on durable backend, "
                    f"retrying on {self.fallback.name}: {e}",
                    extra={"operation": operation, "backend": self.durable.name}
                )

        attempts.append(self.fallback.name)
        try:
            value = await getattr(self.fallback, operation)(*args, **kwargs)
            track_storage_operation(self.fallback.name, operation, True)
            return StorageResult.stored(value, self.fallback.name, failed_over, attempts)
        except Exception as e:
            track_storage_operation(self.fallback.name, operation, False)
            logger.error(
                f"Storage operation {operation} failed on every backend: {e}",
                extra={"operation": operation, "backend": self.fallback.name},
                exc_info=True
            )
            return StorageResult.failed(f"{operation} failed: {type(e).__name__}", attempts)

    # ===========================
    # Bookings
    # ===========================

    async def save_booking(self, booking: Dict[str, Any]) -> StorageResult:
        """Persist a booking whose bookingId the caller already generated."""
        return await self._execute("save_booking", booking)

    async def get_booking(self, booking_id: str) -> StorageResult:
        return await self._execute("get_booking", booking_id)

    async def get_user_bookings(
        self,
        user_id: str,
        status: Optional[str] = None,
        booking_type: Optional[str] = None,
        limit: Optional[int] = None
    ) -> StorageResult:
        return await self._execute(
            "get_user_bookings",
            user_id,
            status=status,
            booking_type=booking_type,
            limit=limit
        )

    async def get_all_bookings(self) -> StorageResult:
        return await self._execute("get_all_bookings")

    async def update_booking(self, booking_id: str, updates: Dict[str, Any]) -> StorageResult:
        """Merge updates. value is None when the booking does not exist."""
        return await self._execute("update_booking", booking_id, updates)

    async def delete_booking(self, booking_id: str) -> StorageResult:
        """Hard delete. Not reachable from the API; cancellation is a status change."""
        return await self._execute("delete_booking", booking_id)

    async def search_bookings(self, criteria: Dict[str, Any]) -> StorageResult:
        return await self._execute("search_bookings", criteria)

    async def get_booking_stats(self, user_id: Optional[str] = None) -> StorageResult:
        return await self._execute("get_booking_stats", user_id)

    # ===========================
    # Preferences
    # ===========================

    async def save_user_preferences(self, user_id: str, preferences: Dict[str, Any]) -> StorageResult:
        return await self._execute("save_user_preferences", user_id, preferences)

    async def get_user_preferences(self, user_id: str) -> StorageResult:
        return await self._execute("get_user_preferences", user_id)

    # ===========================
    # Alerts
    # ===========================

    async def save_alert(self, alert: Dict[str, Any]) -> StorageResult:
        return await self._execute("save_alert", alert)

    async def get_alerts(self, user_id: str, status: Optional[str] = None, limit: Optional[int] = 50) -> StorageResult:
        return await self._execute("get_alerts", user_id, status=status, limit=limit)

    async def update_alert(self, alert_id: str, updates: Dict[str, Any]) -> StorageResult:
        return await self._execute("update_alert", alert_id, updates)

    # ===========================
    # Health, backup, reconciliation
    # ===========================

    async def refresh_health(self) -> bool:
        """Check the durable backend and update the cached flag."""
        if self.durable is None:
            update_durable_store_health(False)
            return False

        try:
            healthy = await self.durable.ping()
        except Exception as e:
            logger.warning(f"Durable store health check failed: {e}")
            self.durable.health.mark_down(str(e))
            healthy = False

        update_durable_store_health(healthy)
        return healthy

    async def health_check(self) -> Dict[str, Any]:
        if self.durable_healthy:
            try:
                details = await self.durable.health_check()
                if details.get("status") == "connected":
                    return {"status": self.durable.name, **{k: v for k, v in details.items() if k != "status"}}
            except Exception as e:
                logger.warning(f"Durable store health check failed: {e}")

        details = await self.fallback.health_check()
        details["status"] = self.fallback.name
        details["message"] = "Using JSON file storage (durable store not available)"
        return details

    async def create_backup(self) -> StorageResult:
        """Snapshot the flat-file backend. Backups are a flat-file feature only."""
        try:
            path = await self.fallback.create_backup()
            return StorageResult.stored(path, self.fallback.name)
        except Exception as e:
            logger.error(f"Backup failed: {e}", exc_info=True)
            return StorageResult.failed(f"create_backup failed: {type(e).__name__}", [self.fallback.name])

    async def restore_from_backup(self, backup_file: str) -> StorageResult:
        try:
            restored = await self.fallback.restore_from_backup(backup_file)
            return StorageResult.stored(restored, self.fallback.name)
        except Exception as e:
            logger.error(f"Restore from {backup_file} failed: {e}", exc_info=True)
            return StorageResult.failed(f"restore_from_backup failed: {type(e).__name__}", [self.fallback.name])

    async def reconcile(self) -> Dict[str, Any]:
        """
        Copy records that landed in the flat-file backend into the durable one.

        Bookings and alerts are copied when missing from the durable
        backend or newer by updatedAt. Preferences are copied only when
        the durable backend has none for that user. Never runs on its own.

        Returns:
            Counts of copied records, or a skipped status when the
            durable backend is unavailable
        """
        if not self.durable_healthy:
            logger.warning("Reconciliation skipped: durable store unavailable")
            return {"status": "skipped", "reason": "durable store unavailable"}

        copied = {"bookings": 0, "preferences": 0, "alerts": 0}
        errors = 0

        for booking in await self.fallback.get_all_bookings():
            try:
                current = await self.durable.get_booking(booking["bookingId"])
                if current is None or _is_newer(booking, current):
                    await self.durable.save_booking(booking)
                    copied["bookings"] += 1
            except Exception as e:
                errors += 1
                logger.error(f"Failed to reconcile booking {booking.get('bookingId')}: {e}")

        for user_id, preferences in (await self.fallback.get_all_preferences()).items():
            try:
                if await self.durable.get_user_preferences(user_id) is None:
                    await self.durable.save_user_preferences(user_id, preferences)
                    copied["preferences"] += 1
            except Exception as e:
                errors += 1
                logger.error(f"Failed to reconcile preferences for {user_id}: {e}")

        for alert in await self.fallback.get_all_alerts():
            try:
                existing = await self.durable.get_alerts(alert["userId"], limit=None)
                current = next((a for a in existing if a.get("alertId") == alert["alertId"]), None)
                if current is None or _is_newer(alert, current):
                    await self.durable.save_alert(alert)
                    copied["alerts"] += 1
            except Exception as e:
                errors += 1
                logger.error(f"Failed to reconcile alert {alert.get('alertId')}: {e}")

        logger.info(f"Reconciliation complete: {copied} ({errors} errors)")
        return {"status": "completed", "copied": copied, "errors": errors}

    async def close(self) -> None:
        if self.durable is not None:
            await self.durable.close()


def _is_newer(candidate: Dict[str, Any], current: Dict[str, Any]) -> bool:
    return (candidate.get("updatedAt") or "") > (current.get("updatedAt") or "")


__all__ = ['StorageGateway', 'StorageResult']
