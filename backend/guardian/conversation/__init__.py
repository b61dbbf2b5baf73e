"""
Conversation history package.
Bounded per-conversation message history with pluggable backends.

Version: 1.0.0
"""
import logging

from .conversation_store import ConversationStore
from .in_memory_conversation_store import InMemoryConversationStore
from .redis_conversation_store import RedisConversationStore
from .validators import (
    DEFAULT_CONVERSATION_ID,
    ConversationKey,
    Turn,
    make_exchange,
    serialize_turns
)

logger = logging.getLogger(__name__)


def create_conversation_store(settings) -> ConversationStore:
    """
    Build the conversation store selected by settings.

    Args:
        settings: Application settings

    Returns:
        Configured ConversationStore
    """
    if settings.conversation_store_type == "redis":
        logger.info("Using Redis conversation store")
        return RedisConversationStore(
            redis_url=settings.redis_url,
            max_messages=settings.conversation_max_messages,
            ttl=settings.conversation_ttl_seconds or None
        )

    logger.info("Using in-memory conversation store")
    return InMemoryConversationStore(
        max_messages=settings.conversation_max_messages,
        max_keys=settings.conversation_max_keys
    )


__all__ = [
    'ConversationStore',
    'InMemoryConversationStore',
    'RedisConversationStore',
    'DEFAULT_CONVERSATION_ID',
    'ConversationKey',
    'Turn',
    'make_exchange',
    'serialize_turns',
    'create_conversation_store'
]
