"""
User preferences model.
"""
from sqlalchemy import Column, String, DateTime, JSON
from datetime import datetime

from ..database import Base


class UserPreferences(Base):
    """
    Opaque per-user preference blob, last write wins.
    """
    __tablename__ = "user_preferences"

    user_id = Column(String(100), primary_key=True)
    preferences = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<UserPreferences(user={self.user_id})>"
