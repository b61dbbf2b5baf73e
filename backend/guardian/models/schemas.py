"""
Pydantic schemas for request/response validation.

Wire names are camelCase (userId, conversationId, ...); attributes
are snake_case and populated through aliases.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional, Dict, Any
from enum import Enum


class MessageRole(str, Enum):
    """Message role enumeration."""
    USER = "user"
    ASSISTANT = "assistant"


class Channel(str, Enum):
    """Conversation channel."""
    TEXT = "text"
    VOICE = "voice"


class BookingType(str, Enum):
    BUS = "bus"
    TRAIN = "train"
    FLIGHT = "flight"


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class AlertStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class CamelModel(BaseModel):
    """Base model accepting camelCase wire names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Chat

class ChatRequest(CamelModel):
    """Request to send a chat message."""
    message: str = Field(..., min_length=1, max_length=4000)
    user_id: str = Field(..., min_length=1)
    conversation_id: Optional[str] = None
    use_reasoner: bool = False

    @field_validator('message')
    @classmethod
    def validate_message(cls, v):
        """Ensure message is not just whitespace."""
        if not v.strip():
            raise ValueError('Message cannot be empty')
        return v.strip()

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "message": "Explain step by step how compound interest works",
                "userId": "u1",
                "conversationId": "default",
                "useReasoner": False
            }
        }
    )


class WebSearchRequest(CamelModel):
    query: str = Field(..., min_length=1, max_length=500)
    user_id: str = Field(..., min_length=1)


# Booking

class BookingCreateRequest(CamelModel):
    """Request to create a booking."""
    user_id: str = Field(..., min_length=1)
    booking_data: Dict[str, Any]

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": "u1",
                "bookingData": {
                    "type": "bus",
                    "from": "Delhi",
                    "to": "Mumbai",
                    "date": "2030-01-15",
                    "time": "10:00",
                    "seatType": "standard",
                    "passengers": [{"name": "Asha", "age": 34}]
                }
            }
        }
    )


class BookingUpdateRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    updates: Dict[str, Any] = Field(default_factory=dict)


class BookingCancelRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    reason: str = "User cancellation"


class BookingSearchRequest(CamelModel):
    criteria: Dict[str, Any]
    user_id: Optional[str] = None


class BookingSimulateRequest(CamelModel):
    booking_data: Dict[str, Any]


class PreferencesRequest(CamelModel):
    preferences: Dict[str, Any] = Field(default_factory=dict)


# Voice

class VoiceProcessRequest(CamelModel):
    """Request to process a voice transcript."""
    transcript: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    language: str = "en"
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class VoiceCommandRequest(CamelModel):
    command: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)


class WakeWordRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    wake_word: str = Field(..., min_length=1)
    confidence: Optional[float] = None
    timestamp: Optional[str] = None


class EmergencyRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    emergency_type: str = Field(..., min_length=1)
    location: Optional[Any] = None
    additional_info: Optional[str] = None


class AlertUpdateRequest(CamelModel):
    """Resolve or cancel an alert."""
    user_id: str = Field(..., min_length=1)
    status: AlertStatus
    note: Optional[str] = None


# Responses

class ChatResponse(BaseModel):
    success: bool = True
    response: str
    source: str
    model: Optional[str] = None
    timestamp: str
    usage: Optional[Dict[str, Any]] = None
    conversationId: str


class HistoryResponse(BaseModel):
    success: bool = True
    history: List[Dict[str, Any]]
    conversationId: Optional[str] = None
    sessionId: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    uptime: float
    environment: str


__all__ = [
    'MessageRole',
    'Channel',
    'BookingType',
    'BookingStatus',
    'AlertStatus',
    'ChatRequest',
    'WebSearchRequest',
    'BookingCreateRequest',
    'BookingUpdateRequest',
    'BookingCancelRequest',
    'BookingSearchRequest',
    'BookingSimulateRequest',
    'PreferencesRequest',
    'VoiceProcessRequest',
    'VoiceCommandRequest',
    'WakeWordRequest',
    'EmergencyRequest',
    'AlertUpdateRequest',
    'ChatResponse',
    'HistoryResponse',
    'HealthResponse'
]
