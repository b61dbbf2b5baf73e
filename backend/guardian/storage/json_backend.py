"""
Flat-file JSON storage backend.
Always available; used directly when the durable store is down and as
the failover target when a durable call fails.

Version: 1.0.0
"""
import copy
import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .backend import (
    StorageBackend,
    IMMUTABLE_ALERT_FIELDS,
    compute_stats,
    filter_user_bookings,
    matches_criteria,
    merge_update,
    sort_newest_first
)
from ..utils import utcnow_iso

logger = logging.getLogger(__name__)


class JSONFileBackend(StorageBackend):
    """
    JSON file implementation of StorageBackend.

    Files under ``data_dir``:
    - bookings.json: list of booking documents
    - users.json: {userId: {preferences, updatedAt}}
    - alerts.json: list of emergency alert documents
    - backups/backup-<timestamp>.json: snapshots from create_backup()

    Every operation is read-modify-write of one file under a lock and
    runs in the thread pool. Files are replaced atomically.
    """

    name = "json_fallback"

    def __init__(self, data_dir: str = "./data"):
        self.data_dir = Path(data_dir)
        self.bookings_file = self.data_dir / "bookings.json"
        self.users_file = self.data_dir / "users.json"
        self.alerts_file = self.data_dir / "alerts.json"
        self.backup_dir = self.data_dir / "backups"
        self._lock = threading.RLock()

        self._init_files()
        logger.info(f"JSONFileBackend initialized (data_dir={self.data_dir})")

    @property
    def is_healthy(self) -> bool:
        return True

    # ===========================
    # File helpers
    # ===========================

    def _init_files(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for path, default in (
            (self.bookings_file, []),
            (self.users_file, {}),
            (self.alerts_file, [])
        ):
            if not path.exists():
                self._write(path, default)

    def _read(self, path: Path, default: Any) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return copy.deepcopy(default)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt JSON in {path}: {e}")
            raise

    def _write(self, path: Path, data: Any) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp_path, path)

    # ===========================
    # Bookings
    # ===========================

    def _save_booking_sync(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            bookings = self._read(self.bookings_file, [])
            bookings = [b for b in bookings if b.get('bookingId') != booking['bookingId']]
            bookings.append(booking)
            self._write(self.bookings_file, bookings)
        return copy.deepcopy(booking)

    async def save_booking(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run_sync(self._save_booking_sync, booking)

    def _get_booking_sync(self, booking_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            bookings = self._read(self.bookings_file, [])
        return next((b for b in bookings if b.get('bookingId') == booking_id), None)

    async def get_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        return await self._run_sync(self._get_booking_sync, booking_id)

    def _all_bookings_sync(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read(self.bookings_file, [])

    async def get_user_bookings(
        self,
        user_id: str,
        status: Optional[str] = None,
        booking_type: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        bookings = await self._run_sync(self._all_bookings_sync)
        return filter_user_bookings(bookings, user_id, status, booking_type, limit)

    async def get_all_bookings(self) -> List[Dict[str, Any]]:
        return await self._run_sync(self._all_bookings_sync)

    def _update_booking_sync(self, booking_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            bookings = self._read(self.bookings_file, [])
            for index, booking in enumerate(bookings):
                if booking.get('bookingId') == booking_id:
                    bookings[index] = merge_update(booking, updates)
                    self._write(self.bookings_file, bookings)
                    return copy.deepcopy(bookings[index])
        return None

    async def update_booking(self, booking_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._run_sync(self._update_booking_sync, booking_id, updates)

    def _delete_booking_sync(self, booking_id: str) -> bool:
        with self._lock:
            bookings = self._read(self.bookings_file, [])
            remaining = [b for b in bookings if b.get('bookingId') != booking_id]
            if len(remaining) == len(bookings):
                return False
            self._write(self.bookings_file, remaining)
        return True

    async def delete_booking(self, booking_id: str) -> bool:
        return await self._run_sync(self._delete_booking_sync, booking_id)

    async def search_bookings(self, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        bookings = await self._run_sync(self._all_bookings_sync)
        return sort_newest_first(b for b in bookings if matches_criteria(b, criteria))

    async def get_booking_stats(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        bookings = await self._run_sync(self._all_bookings_sync)
        if user_id:
            bookings = [b for b in bookings if b.get('userId') == user_id]
        return compute_stats(bookings)

    # ===========================
    # Preferences
    # ===========================

    def _save_preferences_sync(self, user_id: str, preferences: Dict[str, Any]) -> bool:
        with self._lock:
            users = self._read(self.users_file, {})
            entry = users.get(user_id, {})
            entry.update({"preferences": preferences, "updatedAt": utcnow_iso()})
            users[user_id] = entry
            self._write(self.users_file, users)
        return True

    async def save_user_preferences(self, user_id: str, preferences: Dict[str, Any]) -> bool:
        return await self._run_sync(self._save_preferences_sync, user_id, preferences)

    def _get_preferences_sync(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            users = self._read(self.users_file, {})
        entry = users.get(user_id)
        return entry.get("preferences") if entry else None

    async def get_user_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._run_sync(self._get_preferences_sync, user_id)

    def _all_preferences_sync(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            users = self._read(self.users_file, {})
        return {user_id: entry.get("preferences") or {} for user_id, entry in users.items()}

    async def get_all_preferences(self) -> Dict[str, Dict[str, Any]]:
        return await self._run_sync(self._all_preferences_sync)

    # ===========================
    # Alerts
    # ===========================

    def _save_alert_sync(self, alert: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            alerts = self._read(self.alerts_file, [])
            alerts = [a for a in alerts if a.get('alertId') != alert['alertId']]
            alerts.append(alert)
            self._write(self.alerts_file, alerts)
        return copy.deepcopy(alert)

    async def save_alert(self, alert: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run_sync(self._save_alert_sync, alert)

    def _all_alerts_sync(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read(self.alerts_file, [])

    async def get_all_alerts(self) -> List[Dict[str, Any]]:
        return await self._run_sync(self._all_alerts_sync)

    async def get_alerts(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: Optional[int] = 50
    ) -> List[Dict[str, Any]]:
        alerts = await self._run_sync(self._all_alerts_sync)
        selected = sort_newest_first(
            a for a in alerts
            if a.get('userId') == user_id and (not status or a.get('status') == status)
        )
        return selected[:limit] if limit else selected

    def _update_alert_sync(self, alert_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            alerts = self._read(self.alerts_file, [])
            for index, alert in enumerate(alerts):
                if alert.get('alertId') == alert_id:
                    alerts[index] = merge_update(alert, updates, IMMUTABLE_ALERT_FIELDS)
                    self._write(self.alerts_file, alerts)
                    return copy.deepcopy(alerts[index])
        return None

    async def update_alert(self, alert_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._run_sync(self._update_alert_sync, alert_id, updates)

    # ===========================
    # Backup & Restore
    # ===========================

    def _create_backup_sync(self) -> str:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        timestamp = timestamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")

        with self._lock:
            backup = {
                "timestamp": timestamp,
                "bookings": self._read(self.bookings_file, []),
                "users": self._read(self.users_file, {}),
                "alerts": self._read(self.alerts_file, [])
            }
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            backup_file = self.backup_dir / f"backup-{timestamp}.json"
            self._write(backup_file, backup)

        logger.info(f"Created backup {backup_file}")
        return str(backup_file)

    async def create_backup(self) -> str:
        """
        Snapshot bookings, preferences and alerts.

        Returns:
            Path of the backup file
        """
        return await self._run_sync(self._create_backup_sync)

    def _restore_sync(self, backup_file: str) -> bool:
        path = Path(backup_file)
        with self._lock:
            backup = self._read(path, None)
            if not isinstance(backup, dict):
                raise ValueError(f"Not a backup file: {backup_file}")

            if backup.get("bookings") is not None:
                self._write(self.bookings_file, backup["bookings"])
            if backup.get("users") is not None:
                self._write(self.users_file, backup["users"])
            if backup.get("alerts") is not None:
                self._write(self.alerts_file, backup["alerts"])

        logger.info(f"Restored from backup {backup_file}")
        return True

    async def restore_from_backup(self, backup_file: str) -> bool:
        return await self._run_sync(self._restore_sync, backup_file)

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": self.name,
            "message": "Using JSON file storage",
            "data_dir": str(self.data_dir)
        }


__all__ = ['JSONFileBackend']
