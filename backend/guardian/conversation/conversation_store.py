"""
Abstract conversation store interface.
Defines the contract for bounded conversation history implementations.

Version: 1.0.0
"""
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Sequence

from .validators import ConversationKey, Turn


class ConversationStore(ABC):
    """
    Abstract base class for conversation history storage.

    Implementations must guarantee that:
    - an append adds a whole (user, assistant) exchange or nothing
    - after every append at most ``max_messages`` turns remain, oldest
      dropped first, so a window always starts with a user turn
    - get() on an unknown key returns an empty list and never raises
    """

    def __init__(self, max_messages: int = 20):
        if max_messages < 2 or max_messages % 2:
            raise ValueError("max_messages must be a positive even number")
        self.max_messages = max_messages

    @abstractmethod
    async def append(self, key: ConversationKey, turns: Sequence[Turn]) -> None:
        """
        Append one exchange and truncate to the cap as one atomic step.

        Args:
            key: Conversation identity
            turns: (user, assistant) pair

        Raises:
            ValidationError: If turns is not a (user, assistant) pair
        """
        pass

    @abstractmethod
    async def get(self, key: ConversationKey) -> List[Turn]:
        """
        Get history, oldest first.

        Returns:
            List of turns, empty if key unknown
        """
        pass

    @abstractmethod
    async def clear(self, key: ConversationKey) -> bool:
        """
        Remove the key entirely.

        Returns:
            True if a history existed
        """
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None

    async def health_check(self) -> Dict[str, Any]:
        try:
            stats = await self.get_stats()
            return {"healthy": True, "stats": stats}
        except Exception as e:
            return {"healthy": False, "error": str(e)}


__all__ = ['ConversationStore']
