"""
Reply provider interface.
A provider turns one utterance plus bounded history into a reply.

Version: 1.0.0
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Type

from ..utils import utcnow_iso


@dataclass
class ProviderReply:
    """
    Reply produced by one provider tier.

    source names the tier that answered: deepseek, openai, web_search,
    or error for the fixed apology.
    """
    response: str
    source: str
    model: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "response": self.response,
            "source": self.source,
            "timestamp": self.timestamp
        }
        if self.model:
            result["model"] = self.model
        if self.usage:
            result["usage"] = self.usage
        return result


class ReplyProvider(ABC):
    """Base class for reply providers."""

    name: str = "abstract"

    # Exception types retried before the tier is given up
    transient_errors: Tuple[Type[BaseException], ...] = ()

    @property
    @abstractmethod
    def configured(self) -> bool:
        """True when the provider has what it needs to be called."""
        pass

    @property
    def supports_streaming(self) -> bool:
        return False

    @abstractmethod
    async def generate(
        self,
        messages: List[Dict[str, str]],
        use_reasoner: bool = False
    ) -> ProviderReply:
        """
        Generate a reply for a complete message list.

        Raises on any failure; the orchestrator decides what comes next.
        """
        pass

    async def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """Yield content deltas. Only providers with supports_streaming implement this."""
        raise NotImplementedError(f"{self.name} does not stream")
        yield  # pragma: no cover

    async def close(self) -> None:
        return None


def build_messages(
    system_prompt: str,
    history: List[Dict[str, str]],
    message: str,
    window: int = 10,
    now: Optional[datetime] = None
) -> List[Dict[str, str]]:
    """
    Assemble the provider message list.

    System instruction with the current time, then the most recent
    ``window`` history messages, then the user's utterance.
    """
    now = now or datetime.now(timezone.utc)
    timestamp = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    recent = history[-window:] if window > 0 else []
    return [
        {"role": "system", "content": f"{system_prompt} Current time: {timestamp}"},
        *({"role": m["role"], "content": m["content"]} for m in recent),
        {"role": "user", "content": message}
    ]
