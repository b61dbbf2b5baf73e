"""
Chat-completion providers over the OpenAI SDK.
DeepSeek speaks the same protocol at its own base URL, so both tiers
share one implementation.

Version: 1.0.0
"""
import logging
from typing import AsyncIterator, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from .base import ProviderReply, ReplyProvider
from ..config.provider_settings import ProviderSettings

logger = logging.getLogger(__name__)

# Transport-level errors worth another attempt
TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError
)


class OpenAICompatibleProvider(ReplyProvider):
    """
    Provider backed by an OpenAI-compatible chat completions endpoint.

    ``reasoner_model`` is used when the caller escalates; providers
    without one ignore the flag.
    """

    transient_errors = TRANSIENT_ERRORS

    def __init__(
        self,
        name: str,
        api_key: Optional[str],
        model: str,
        base_url: Optional[str] = None,
        reasoner_model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        client: Optional[AsyncOpenAI] = None
    ):
        self.name = name
        self.model = model
        self.reasoner_model = reasoner_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._configured = bool(api_key) or client is not None

        if client is not None:
            self.client = client
        elif api_key:
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        else:
            self.client = None

        logger.info(
            f"Provider '{name}' {'configured' if self._configured else 'not configured'} "
            f"(model={model})"
        )

    @property
    def configured(self) -> bool:
        return self._configured

    @property
    def supports_streaming(self) -> bool:
        return True

    def select_model(self, use_reasoner: bool) -> str:
        if use_reasoner and self.reasoner_model:
            return self.reasoner_model
        return self.model

    async def generate(
        self,
        messages: List[Dict[str, str]],
        use_reasoner: bool = False
    ) -> ProviderReply:
        model = self.select_model(use_reasoner)

        completion = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=False
        )

        content = completion.choices[0].message.content or ""
        usage = completion.usage.model_dump() if completion.usage is not None else None

        return ProviderReply(
            response=content,
            source=self.name,
            model=model,
            usage=usage
        )

    async def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        response_stream = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=True
        )

        async for chunk in response_stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                yield content

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()


def create_deepseek_provider(settings: ProviderSettings) -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(
        name="deepseek",
        api_key=settings.get_deepseek_api_key(),
        model=settings.deepseek_chat_model,
        reasoner_model=settings.deepseek_reasoner_model,
        base_url=settings.deepseek_base_url,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens
    )


def create_openai_provider(settings: ProviderSettings) -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(
        name="openai",
        api_key=settings.get_openai_api_key(),
        model=settings.openai_model,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens
    )


__all__ = [
    'OpenAICompatibleProvider',
    'TRANSIENT_ERRORS',
    'create_deepseek_provider',
    'create_openai_provider'
]
