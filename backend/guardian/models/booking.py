"""
Booking model for the durable store.

The full booking document lives in the JSON `data` column; the
columns beside it are copies of the fields bookings are queried by.
"""
from sqlalchemy import Column, String, DateTime, JSON, Float
from datetime import datetime

from ..database import Base


class Booking(Base):
    """
    Travel booking record.
    """
    __tablename__ = "bookings"

    booking_id = Column(String(40), primary_key=True)
    user_id = Column(String(100), nullable=False, index=True)

    type = Column(String(20), nullable=False, index=True)  # bus, train, flight
    status = Column(String(20), nullable=False, index=True, default="confirmed")
    origin = Column(String(100), nullable=True)
    destination = Column(String(100), nullable=True)
    travel_date = Column(String(10), nullable=True, index=True)  # YYYY-MM-DD
    price = Column(Float, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    data = Column(JSON, nullable=False, default=dict)

    @classmethod
    def from_document(cls, document: dict) -> "Booking":
        row = cls(booking_id=document["bookingId"], user_id=document["userId"])
        row.apply_document(document)
        return row

    def apply_document(self, document: dict) -> None:
        """Copy a booking document into this row, refreshing the indexed columns."""
        self.type = document.get("type")
        self.status = document.get("status", "confirmed")
        self.origin = document.get("from")
        self.destination = document.get("to")
        self.travel_date = document.get("date") or document.get("departureDate")
        self.price = document.get("estimatedPrice")
        self.data = dict(document)

    def to_document(self) -> dict:
        return dict(self.data or {})

    def __repr__(self):
        return f"<Booking(id={self.booking_id}, user={self.user_id}, status={self.status})>"
