"""
Live connection registry.
Tracks each connection's identity and its fan-out group membership.

Version: 1.0.0
"""
import logging
from typing import Dict, Any, Optional, List, Set
from datetime import datetime
from pydantic import BaseModel, Field

from ..conversation.validators import DEFAULT_CONVERSATION_ID

logger = logging.getLogger(__name__)


class SessionRecord(BaseModel):
    """
    One live connection's identity.

    Owned by the registry; callers only ever see copies.
    """

    connection_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    session_id: str = DEFAULT_CONVERSATION_ID
    preferences: Dict[str, Any] = Field(default_factory=dict)
    connected_at: datetime = Field(default_factory=datetime.utcnow)
    last_activity: datetime = Field(default_factory=datetime.utcnow)

    def to_status(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "sessionId": self.session_id,
            "connectedAt": self.connected_at.isoformat(),
            "lastActivity": self.last_activity.isoformat()
        }


def user_group(user_id: str) -> str:
    return f"user:{user_id}"


def session_group(user_id: str, session_id: Optional[str] = None) -> str:
    return f"session:{user_id}:{session_id or DEFAULT_CONVERSATION_ID}"


class SessionRegistry:
    """
    Registry of live connections.

    All methods are synchronous and never await, so on a single event
    loop every mutation completes without interleaving.

    Features:
    - One record per connection id, overwritten on re-registration
    - Per-user and per-user-per-session fan-out groups
    - Snapshot listing and counts for health endpoints
    """

    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}
        self._groups: Dict[str, Set[str]] = {}

        logger.info("SessionRegistry initialized")

    def register(
        self,
        connection_id: str,
        user_id: str,
        session_id: Optional[str] = None,
        preferences: Optional[Dict[str, Any]] = None
    ) -> SessionRecord:
        """
        Create or overwrite the record for a connection and join its groups.

        Args:
            connection_id: Transport connection identifier
            user_id: Caller supplied user identifier
            session_id: Logical session, defaults to "default"
            preferences: Arbitrary preference blob

        Returns:
            Copy of the stored record
        """
        if connection_id in self._records:
            self._leave_groups(connection_id)

        record = SessionRecord(
            connection_id=connection_id,
            user_id=user_id,
            session_id=session_id or DEFAULT_CONVERSATION_ID,
            preferences=preferences or {}
        )
        self._records[connection_id] = record

        for group in self._groups_for(record):
            self._groups.setdefault(group, set()).add(connection_id)

        logger.info(
            f"User {user_id} connected with session {record.session_id}",
            extra={"connection_id": connection_id, "user_id": user_id}
        )
        return record.model_copy(deep=True)

    def authorize(self, connection_id: str, claimed_user_id: Optional[str]) -> bool:
        """True iff the connection is registered under the claimed user id."""
        record = self._records.get(connection_id)
        return record is not None and bool(claimed_user_id) and record.user_id == claimed_user_id

    def touch(self, connection_id: str) -> None:
        record = self._records.get(connection_id)
        if record is not None:
            record.last_activity = datetime.utcnow()

    def get(self, connection_id: str) -> Optional[SessionRecord]:
        record = self._records.get(connection_id)
        return record.model_copy(deep=True) if record is not None else None

    def remove(self, connection_id: str) -> Optional[SessionRecord]:
        """Drop the record and its group memberships. Idempotent."""
        if connection_id not in self._records:
            return None

        self._leave_groups(connection_id)
        record = self._records.pop(connection_id)

        logger.info(
            f"User {record.user_id} disconnected",
            extra={"connection_id": connection_id, "user_id": record.user_id}
        )
        return record

    def list_active(self) -> List[SessionRecord]:
        """Snapshot of all records; later changes are not reflected."""
        return [record.model_copy(deep=True) for record in self._records.values()]

    def members(self, group: str) -> Set[str]:
        """Connection ids in a group, as a copy."""
        return set(self._groups.get(group, ()))

    def user_connections(self, user_id: str) -> Set[str]:
        return self.members(user_group(user_id))

    def session_connections(self, user_id: str, session_id: Optional[str] = None) -> Set[str]:
        return self.members(session_group(user_id, session_id))

    def is_registered(self, connection_id: str) -> bool:
        return connection_id in self._records

    def count_connections(self) -> int:
        return len(self._records)

    def count_users(self) -> int:
        return len({record.user_id for record in self._records.values()})

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active_connections": self.count_connections(),
            "active_users": self.count_users(),
            "groups": len(self._groups)
        }

    def _groups_for(self, record: SessionRecord) -> List[str]:
        return [user_group(record.user_id), session_group(record.user_id, record.session_id)]

    def _leave_groups(self, connection_id: str) -> None:
        record = self._records[connection_id]
        for group in self._groups_for(record):
            members = self._groups.get(group)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._groups[group]


__all__ = ['SessionRecord', 'SessionRegistry', 'user_group', 'session_group']
