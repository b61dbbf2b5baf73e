"""
Reply providers, in fallback order: primary reasoning service,
secondary general-purpose service, web-derived fallback.
"""
from typing import List

from .base import ProviderReply, ReplyProvider, build_messages
from .openai_compatible import (
    OpenAICompatibleProvider,
    create_deepseek_provider,
    create_openai_provider
)
from .web_search import WebSearchProvider
from ..config.provider_settings import ProviderSettings


def create_provider_chain(settings: ProviderSettings) -> List[ReplyProvider]:
    """Primary, secondary and web fallback, in that order."""
    return [
        create_deepseek_provider(settings),
        create_openai_provider(settings),
        WebSearchProvider(settings)
    ]


__all__ = [
    'ProviderReply',
    'ReplyProvider',
    'build_messages',
    'OpenAICompatibleProvider',
    'WebSearchProvider',
    'create_provider_chain'
]
