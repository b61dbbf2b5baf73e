"""
Emergency alert model.
"""
from sqlalchemy import Column, String, DateTime, JSON
from datetime import datetime

from ..database import Base


class EmergencyAlert(Base):
    """
    Emergency alert record. Alerts are never deleted; they move
    from active to resolved or cancelled.
    """
    __tablename__ = "emergency_alerts"

    alert_id = Column(String(40), primary_key=True)
    user_id = Column(String(100), nullable=False, index=True)
    type = Column(String(20), nullable=False, default="general")  # medical, fire, police, general
    status = Column(String(20), nullable=False, default="active", index=True)
    priority = Column(String(20), nullable=False, default="high")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    data = Column(JSON, nullable=False, default=dict)

    @classmethod
    def from_document(cls, document: dict) -> "EmergencyAlert":
        row = cls(alert_id=document["alertId"], user_id=document["userId"])
        row.apply_document(document)
        return row

    def apply_document(self, document: dict) -> None:
        self.type = document.get("type", "general")
        self.status = document.get("status", "active")
        self.priority = document.get("priority", "high")
        self.data = dict(document)

    def to_document(self) -> dict:
        return dict(self.data or {})

    def __repr__(self):
        return f"<EmergencyAlert(id={self.alert_id}, user={self.user_id}, status={self.status})>"
