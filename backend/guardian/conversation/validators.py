"""
Conversation turn validation using Pydantic.

Version: 1.0.0
"""
import json
from typing import Any, Dict, List, NamedTuple, Sequence
from datetime import datetime
from pydantic import BaseModel, Field

from ..errors import ValidationError
from ..models.schemas import Channel, MessageRole

DEFAULT_CONVERSATION_ID = "default"


class ConversationKey(NamedTuple):
    """Identity of one bounded history: (user, conversation or voice session, channel)."""
    user_id: str
    conversation_id: str = DEFAULT_CONVERSATION_ID
    channel: str = Channel.TEXT.value

    @classmethod
    def for_text(cls, user_id: str, conversation_id: str = None) -> "ConversationKey":
        return cls(user_id, conversation_id or DEFAULT_CONVERSATION_ID, Channel.TEXT.value)

    @classmethod
    def for_voice(cls, user_id: str, session_id: str = None) -> "ConversationKey":
        return cls(user_id, session_id or DEFAULT_CONVERSATION_ID, Channel.VOICE.value)

    def as_string(self) -> str:
        return f"{self.channel}:{self.user_id}:{self.conversation_id}"


class Turn(BaseModel):
    """
    One message of a conversation.
    """

    role: MessageRole
    content: str = Field(..., max_length=100_000)
    channel: Channel = Channel.TEXT
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"use_enum_values": True}

    def to_message(self) -> Dict[str, str]:
        """Shape expected by chat completion APIs."""
        return {"role": self.role, "content": self.content}

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "Turn":
        return cls.model_validate(json.loads(data))


def make_exchange(
    user_content: str,
    assistant_content: str,
    channel: str = Channel.TEXT.value
) -> List[Turn]:
    """Build the (user, assistant) pair appended after one exchange."""
    now = datetime.utcnow()
    return [
        Turn(role=MessageRole.USER, content=user_content, channel=channel, timestamp=now),
        Turn(role=MessageRole.ASSISTANT, content=assistant_content, channel=channel, timestamp=now)
    ]


def validate_exchange(turns: Sequence[Turn]) -> None:
    """
    Appends are whole exchanges: exactly a user turn followed by an
    assistant turn.

    Raises:
        ValidationError: If turns is not a (user, assistant) pair
    """
    if len(turns) != 2:
        raise ValidationError(f"Expected a (user, assistant) pair, got {len(turns)} turns")

    roles = [t.role for t in turns]
    if roles != [MessageRole.USER.value, MessageRole.ASSISTANT.value]:
        raise ValidationError(f"Exchange must be user then assistant, got {roles}")


def serialize_turns(turns: Sequence[Turn]) -> List[Dict[str, Any]]:
    return [t.model_dump(mode="json") for t in turns]


__all__ = [
    'DEFAULT_CONVERSATION_ID',
    'ConversationKey',
    'Turn',
    'make_exchange',
    'validate_exchange',
    'serialize_turns'
]
