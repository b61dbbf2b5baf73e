"""
In-memory conversation store implementation.
Suitable for development and single-instance deployments.

Version: 1.0.0
"""
import asyncio
import logging
from typing import Dict, Any, List, Sequence

from cachetools import LRUCache

from .conversation_store import ConversationStore
from .validators import ConversationKey, Turn, validate_exchange

logger = logging.getLogger(__name__)


class InMemoryConversationStore(ConversationStore):
    """
    In-memory implementation of ConversationStore.

    Features:
    - Bounded number of conversations (least recently used evicted)
    - Per-conversation cap on messages, trimmed in whole exchanges
    - Append-then-truncate under one asyncio lock

    Limitations:
    - History lost on restart
    - Not shared across multiple instances
    """

    def __init__(self, max_messages: int = 20, max_keys: int = 10000):
        """
        Initialize in-memory conversation store.

        Args:
            max_messages: Messages kept per conversation
            max_keys: Conversations kept before LRU eviction
        """
        super().__init__(max_messages)
        self.histories: LRUCache = LRUCache(maxsize=max_keys)
        self.max_keys = max_keys
        self.lock = asyncio.Lock()

        logger.info(
            f"InMemoryConversationStore initialized "
            f"(max_messages={max_messages}, max_keys={max_keys})"
        )

    async def append(self, key: ConversationKey, turns: Sequence[Turn]) -> None:
        validate_exchange(turns)

        async with self.lock:
            history = list(self.histories.get(key, ()))
            history.extend(turns)

            if len(history) > self.max_messages:
                history = history[-self.max_messages:]

            # Store a tuple so readers never see a list being mutated
            self.histories[key] = tuple(history)

        logger.debug(f"Appended exchange to {key.as_string()} ({len(history)} messages)")

    async def get(self, key: ConversationKey) -> List[Turn]:
        async with self.lock:
            return list(self.histories.get(key, ()))

    async def clear(self, key: ConversationKey) -> bool:
        async with self.lock:
            existed = self.histories.pop(key, None) is not None

        if existed:
            logger.debug(f"Cleared conversation {key.as_string()}")
        return existed

    async def get_stats(self) -> Dict[str, Any]:
        async with self.lock:
            total_messages = sum(len(h) for h in self.histories.values())
            return {
                "store_type": "in_memory",
                "conversations": len(self.histories),
                "max_keys": self.max_keys,
                "max_messages": self.max_messages,
                "total_messages": total_messages
            }


__all__ = ['InMemoryConversationStore']
