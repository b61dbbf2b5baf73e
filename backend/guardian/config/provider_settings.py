"""
Provider-specific configuration settings.
Credentials, model names and resilience tuning for the reply provider chain.

Version: 1.0.0
"""
from typing import List, Optional, Union
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
import os
import logging

logger = logging.getLogger(__name__)


DEFAULT_REASONING_KEYWORDS = [
    "analyze", "explain", "reasoning", "logic", "problem", "solve",
    "calculate", "math", "complex", "detailed", "step by step"
]


class ProviderSettings(BaseSettings):
    """
    Reply provider configuration.

    A provider counts as configured only when its API key resolves
    to a non-empty secret. Keys may be given directly or as an
    env://VARIABLE reference.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================
    # Primary reasoning provider (DeepSeek)
    # ===========================

    deepseek_api_key: Optional[SecretStr] = Field(
        default=None,
        description="DeepSeek API key (supports env:// prefix)"
    )

    deepseek_base_url: str = Field(
        default="https://api.deepseek.com",
        description="DeepSeek OpenAI-compatible endpoint"
    )

    deepseek_chat_model: str = Field(
        default="deepseek-chat",
        description="Model used in standard mode"
    )

    deepseek_reasoner_model: str = Field(
        default="deepseek-reasoner",
        description="Model used in escalated reasoning mode"
    )

    # ===========================
    # Secondary provider (OpenAI)
    # ===========================

    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        description="OpenAI API key (supports env:// prefix)"
    )

    openai_model: str = Field(
        default="gpt-3.5-turbo",
        description="OpenAI chat model"
    )

    # ===========================
    # Generation parameters
    # ===========================

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2000, ge=1, le=32000)

    history_window: int = Field(
        default=10,
        ge=0,
        description="Most recent history messages sent with each request"
    )

    system_prompt: str = Field(
        default=(
            "You are Neura-X Guardian Angel, a helpful AI assistant. "
            "You provide accurate, helpful, and friendly responses."
        ),
        description="System instruction; the current time is appended per call"
    )

    reasoning_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_REASONING_KEYWORDS),
        description="Terms that escalate the primary provider to reasoning mode"
    )

    # ===========================
    # Resilience
    # ===========================

    provider_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-call timeout before falling through to the next provider"
    )

    provider_max_retries: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Attempts per provider on transport errors"
    )

    circuit_breaker_fail_max: int = Field(default=5, ge=1)
    circuit_breaker_timeout_seconds: int = Field(default=60, ge=1)

    # ===========================
    # Web-derived fallback
    # ===========================

    web_search_enabled: bool = Field(
        default=True,
        description="Allow the web-derived fallback to reach the network"
    )

    instant_answer_url: str = Field(
        default="https://api.duckduckgo.com/",
        description="Instant answer endpoint"
    )

    search_page_url: str = Field(
        default="https://www.google.com/search",
        description="Generic search results page scraped for snippets"
    )

    web_search_timeout_seconds: float = Field(default=10.0, gt=0)

    web_search_max_snippets: int = Field(default=3, ge=1, le=10)

    bot_user_agent: str = Field(default="Neura-X Guardian Angel Bot 1.0")

    browser_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
        )
    )

    # ===========================
    # Validators
    # ===========================

    @field_validator('reasoning_keywords', mode='before')
    @classmethod
    def parse_reasoning_keywords(cls, v):
        """Parse keywords from a JSON list or comma separated string."""
        if v is None:
            return list(DEFAULT_REASONING_KEYWORDS)

        if isinstance(v, str):
            if v.startswith('['):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            parsed = [kw.strip().lower() for kw in v.split(',') if kw.strip()]
            return parsed or list(DEFAULT_REASONING_KEYWORDS)

        return [str(kw).lower() for kw in v]

    @field_validator('deepseek_api_key', 'openai_api_key', mode='before')
    @classmethod
    def load_api_key_from_source(cls, v: Optional[Union[str, SecretStr]]) -> Optional[SecretStr]:
        """
        Load API key from a direct value or an env:// reference.

        Args:
            v: API key value or reference

        Returns:
            SecretStr with loaded value or None
        """
        if v is None:
            return None

        if isinstance(v, SecretStr):
            v = v.get_secret_value()

        if not isinstance(v, str):
            raise ValueError(f"API key must be string or SecretStr, got {type(v)}")

        if not v.strip():
            return None

        if v.startswith('env://'):
            env_var = v.replace('env://', '')
            env_value = os.getenv(env_var)

            if not env_value:
                logger.warning(f"Environment variable not set: {env_var}")
                return None

            logger.info(f"Loaded API key from environment variable: {env_var}")
            return SecretStr(env_value)

        return SecretStr(v)

    # ===========================
    # Helper Methods
    # ===========================

    def get_deepseek_api_key(self) -> Optional[str]:
        if self.deepseek_api_key:
            return self.deepseek_api_key.get_secret_value()
        return None

    def get_openai_api_key(self) -> Optional[str]:
        if self.openai_api_key:
            return self.openai_api_key.get_secret_value()
        return None

    def get_configured_providers(self) -> List[str]:
        """
        Names of configured providers, in fallback order.
        The web-derived fallback is always last.
        """
        configured = []
        if self.get_deepseek_api_key():
            configured.append('deepseek')
        if self.get_openai_api_key():
            configured.append('openai')
        if self.web_search_enabled:
            configured.append('web_search')
        return configured


# Create global instance
provider_settings = ProviderSettings()

__all__ = ['ProviderSettings', 'provider_settings', 'DEFAULT_REASONING_KEYWORDS']
