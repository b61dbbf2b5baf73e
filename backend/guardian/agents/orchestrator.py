"""
Response orchestrator.
Walks the provider chain for one utterance, keeps the bounded
conversation history up to date, and never lets a provider failure
reach the caller.

Version: 1.0.0
"""
import logging
import time
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

from .intent import classify_intent, should_use_reasoner
from ..config.provider_settings import ProviderSettings
from ..conversation import ConversationKey, ConversationStore, make_exchange, serialize_turns
from ..models.schemas import Channel
from ..providers import ProviderReply, ReplyProvider, build_messages
from ..utils import utcnow_iso
from ..utils.resilience import CircuitBreakerConfig, RetryConfig, call_with_resilience
from ..utils.telemetry import metrics_collector, track_reply_source
from ..errors import ProviderNotConfiguredError, ProviderTimeoutError

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.7

REPEAT_MESSAGE = "I didn't quite catch that. Could you please repeat?"
APOLOGY_MESSAGE = (
    "I'm having trouble processing your request right now. "
    "Please try again later."
)
STREAM_ERROR_MESSAGE = "Sorry, I encountered an error while processing your request."


class ResponseOrchestrator:
    """
    Turns an utterance plus bounded history into a reply.

    Providers are tried in list order, skipping unconfigured ones; each
    attempt runs under timeout, retry and circuit breaker. When every
    provider fails the reply is the fixed apology with source "error".

    Example:
        orchestrator = ResponseOrchestrator(create_provider_chain(s), store, s)
        result = await orchestrator.chat("u1", "Hello")
    """

    def __init__(
        self,
        providers: Sequence[ReplyProvider],
        conversation_store: ConversationStore,
        settings: ProviderSettings
    ):
        """
        Args:
            providers: Chain in priority order, web fallback last
            conversation_store: Bounded history store
            settings: Provider tuning (timeouts, retries, prompt, window)
        """
        self.providers = list(providers)
        self.conversation_store = conversation_store
        self.settings = settings

        logger.info(
            "ResponseOrchestrator initialized with chain: "
            + " -> ".join(
                f"{p.name}{'' if p.configured else ' (unconfigured)'}" for p in self.providers
            )
        )

    # ===========================
    # Provider chain
    # ===========================

    def _retry_config(self, provider: ReplyProvider) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.settings.provider_max_retries,
            retry_exceptions=tuple(provider.transient_errors) + (ProviderTimeoutError,)
        )

    def _breaker_config(self, provider: ReplyProvider) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            fail_max=self.settings.circuit_breaker_fail_max,
            reset_timeout=self.settings.circuit_breaker_timeout_seconds,
            name=provider.name
        )

    async def respond(
        self,
        message: str,
        history: Optional[List[Dict[str, str]]] = None,
        use_reasoner: bool = False
    ) -> ProviderReply:
        """
        Generate a reply by walking the provider chain.

        Never raises; the worst case is the fixed apology.
        """
        messages = build_messages(
            self.settings.system_prompt,
            history or [],
            message,
            window=self.settings.history_window
        )

        for provider in self.providers:
            if not provider.configured:
                continue

            try:
                reply = await call_with_resilience(
                    provider.name,
                    provider.generate,
                    messages,
                    use_reasoner,
                    timeout=self.settings.provider_timeout_seconds,
                    retry_config=self._retry_config(provider),
                    breaker_config=self._breaker_config(provider)
                )
                track_reply_source(reply.source)
                return reply
            except Exception as e:
                logger.warning(
                    f"Provider {provider.name} failed, falling through: {e}",
                    extra={"provider": provider.name, "error_type": type(e).__name__}
                )

        logger.error("Every reply provider failed")
        metrics_collector.record_error()
        track_reply_source("error")
        return ProviderReply(response=APOLOGY_MESSAGE, source="error")

    def _streaming_provider(self) -> Optional[ReplyProvider]:
        return next(
            (p for p in self.providers if p.configured and p.supports_streaming),
            None
        )

    # ===========================
    # History helpers
    # ===========================

    async def _load_history(self, key: ConversationKey) -> List[Dict[str, str]]:
        try:
            turns = await self.conversation_store.get(key)
        except Exception as e:
            # History is reconstructible; answer without it
            logger.error(f"Failed to load history for {key.as_string()}: {e}")
            return []
        return [t.to_message() for t in turns]

    async def _record_exchange(self, key: ConversationKey, message: str, reply: str) -> None:
        try:
            await self.conversation_store.append(key, make_exchange(message, reply, key.channel))
        except Exception as e:
            logger.error(f"Failed to append history for {key.as_string()}: {e}")

    # ===========================
    # Channels
    # ===========================

    async def chat(
        self,
        user_id: str,
        message: str,
        conversation_id: Optional[str] = None,
        use_reasoner: bool = False
    ) -> Dict[str, Any]:
        """
        Text chat exchange.

        Escalates to reasoning mode on the caller's flag or a keyword
        match, then appends the exchange to the text history.
        """
        key = ConversationKey.for_text(user_id, conversation_id)
        history = await self._load_history(key)

        escalate = use_reasoner or should_use_reasoner(message, self.settings.reasoning_keywords)
        reply = await self.respond(message, history, use_reasoner=escalate)

        await self._record_exchange(key, message, reply.response)
        metrics_collector.record_message(Channel.TEXT.value)

        return {**reply.to_dict(), "conversationId": key.conversation_id}

    async def voice(
        self,
        user_id: str,
        transcript: str,
        session_id: Optional[str] = None,
        confidence: Optional[float] = None,
        language: str = "en"
    ) -> Dict[str, Any]:
        """
        Voice exchange with the confidence gate and intent tag.

        Below the threshold the fixed repeat prompt is returned before
        any provider call or history change.
        """
        if confidence is not None and confidence < CONFIDENCE_THRESHOLD:
            return {
                "response": REPEAT_MESSAGE,
                "confidence": confidence,
                "timestamp": utcnow_iso(),
                "requiresRepeat": True,
                "shouldSpeak": True
            }

        key = ConversationKey.for_voice(user_id, session_id)
        history = await self._load_history(key)

        reply = await self.respond(transcript, history)
        await self._record_exchange(key, transcript, reply.response)
        metrics_collector.record_message(Channel.VOICE.value)

        return {
            **reply.to_dict(),
            "commandType": classify_intent(transcript).value,
            "sessionId": key.conversation_id,
            "language": language,
            "confidence": confidence if confidence is not None else 1.0,
            "shouldSpeak": True
        }

    async def stream_chat(
        self,
        user_id: str,
        message: str,
        conversation_id: Optional[str] = None
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Stream a text reply.

        Yields ``chunk`` events followed by exactly one terminal event,
        ``complete`` (carrying the full response) or ``error``. The
        exchange is appended only when the stream completes; a consumer
        that stops early leaves history untouched.
        """
        key = ConversationKey.for_text(user_id, conversation_id)
        history = await self._load_history(key)
        provider = self._streaming_provider()

        if provider is None:
            # Nothing streams; one terminal event from the fallback tiers
            reply = await self.respond(message, history)
            await self._record_exchange(key, message, reply.response)
            yield {
                "type": "complete",
                "fullResponse": reply.response,
                "source": reply.source,
                "timestamp": utcnow_iso(),
                "conversationId": key.conversation_id
            }
            return

        messages = build_messages(
            self.settings.system_prompt,
            history,
            message,
            window=self.settings.history_window
        )

        parts: List[str] = []
        start_time = time.time()
        try:
            async for content in provider.stream(messages):
                parts.append(content)
                yield {"type": "chunk", "content": content, "timestamp": utcnow_iso()}
        except Exception as e:
            logger.error(
                f"Streaming from {provider.name} failed: {e}",
                extra={"provider": provider.name, "user_id": user_id}
            )
            metrics_collector.record_error()
            yield {"type": "error", "content": STREAM_ERROR_MESSAGE, "timestamp": utcnow_iso()}
            return

        full_response = "".join(parts)
        await self._record_exchange(key, message, full_response)
        metrics_collector.record_message(Channel.TEXT.value)
        track_reply_source(provider.name)

        logger.debug(f"Streamed {len(parts)} chunks in {time.time() - start_time:.2f}s")
        yield {
            "type": "complete",
            "fullResponse": full_response,
            "source": provider.name,
            "timestamp": utcnow_iso(),
            "conversationId": key.conversation_id
        }

    async def web_search(self, query: str) -> ProviderReply:
        """
        Query the web fallback tier directly.

        Raises:
            ProviderError: The lookup failed or the tier is disabled
        """
        provider = self.providers[-1]
        if not provider.configured:
            raise ProviderNotConfiguredError(f"Provider {provider.name} is not configured", provider=provider.name)
        return await call_with_resilience(
            provider.name,
            provider.generate,
            [{"role": "user", "content": query}],
            timeout=self.settings.provider_timeout_seconds,
            breaker_config=self._breaker_config(provider)
        )

    # ===========================
    # History access
    # ===========================

    async def get_history(self, key: ConversationKey) -> List[Dict[str, Any]]:
        return serialize_turns(await self.conversation_store.get(key))

    async def clear_history(self, key: ConversationKey) -> bool:
        return await self.conversation_store.clear(key)

    async def close(self) -> None:
        for provider in self.providers:
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing provider {provider.name}: {e}")


__all__ = [
    'ResponseOrchestrator',
    'CONFIDENCE_THRESHOLD',
    'REPEAT_MESSAGE',
    'APOLOGY_MESSAGE',
    'STREAM_ERROR_MESSAGE'
]
