"""
Application configuration.
Loads settings from environment variables and an optional .env file.

Version: 1.0.0
"""
from functools import lru_cache
from typing import List, Optional
import json
import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Core application settings.

    Provider credentials and tuning live in ProviderSettings
    (see provider_settings.py) so they can be rotated independently.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================
    # Application
    # ===========================

    app_name: str = Field(
        default="Neura-X Guardian Angel",
        description="Application display name"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    environment: str = Field(
        default="development",
        description="Deployment environment (development, testing, production)"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode (verbose logs, error details in responses)"
    )

    api_prefix: str = Field(
        default="/api",
        description="Prefix for the request/response API"
    )

    api_host: str = Field(default="0.0.0.0", description="Bind host")
    api_port: int = Field(default=5000, ge=1, le=65535, description="Bind port")

    cors_origins: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow credentials on CORS requests"
    )

    # ===========================
    # Rate Limiting
    # ===========================

    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable per-client rate limiting on the API"
    )

    rate_limit_requests: int = Field(
        default=100,
        ge=1,
        description="Requests allowed per client per period"
    )

    rate_limit_period: int = Field(
        default=900,
        ge=1,
        description="Rate limit window in seconds"
    )

    # ===========================
    # Durable Storage
    # ===========================

    database_url: Optional[str] = Field(
        default="sqlite:///./data/guardian.db",
        description="SQLAlchemy URL of the durable booking store; empty disables it"
    )

    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements"
    )

    database_pool_size: int = Field(default=5, ge=1, description="Connection pool size")
    database_pool_overflow: int = Field(default=10, ge=0, description="Pool overflow")
    database_pool_recycle: int = Field(default=3600, ge=60, description="Connection recycle seconds")

    # ===========================
    # Flat-file Storage
    # ===========================

    data_dir: str = Field(
        default="./data",
        description="Directory for the JSON fallback store and its backups"
    )

    # ===========================
    # Conversation Store
    # ===========================

    conversation_store_type: str = Field(
        default="in_memory",
        description="Conversation store backend: in_memory or redis"
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for the redis conversation store"
    )

    conversation_max_messages: int = Field(
        default=20,
        ge=2,
        description="Messages kept per conversation (always an even number of turns)"
    )

    conversation_max_keys: int = Field(
        default=10000,
        ge=1,
        description="Conversations kept in memory before least-recently-used eviction"
    )

    conversation_ttl_seconds: int = Field(
        default=0,
        ge=0,
        description="Redis key expiry for conversations; 0 keeps them for the process lifetime"
    )

    # ===========================
    # Maintenance & Telemetry
    # ===========================

    storage_health_interval_seconds: int = Field(
        default=30,
        ge=1,
        description="Interval between durable storage health checks"
    )

    enable_telemetry: bool = Field(
        default=True,
        description="Expose Prometheus metrics on /metrics"
    )

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Accept a JSON list or a comma separated string."""
        if v is None:
            return ["*"]

        if isinstance(v, str):
            if v.startswith('['):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(',') if origin.strip()]

        return v

    @field_validator('conversation_store_type')
    @classmethod
    def validate_store_type(cls, v: str) -> str:
        v = v.lower()
        if v not in ("in_memory", "redis"):
            raise ValueError(f"Unknown conversation store type: {v}")
        return v

    @field_validator('conversation_max_messages')
    @classmethod
    def validate_even_cap(cls, v: int) -> int:
        """Exchanges are stored in pairs, so the cap must be even."""
        if v % 2:
            raise ValueError("conversation_max_messages must be an even number")
        return v

    @property
    def database_enabled(self) -> bool:
        return bool(self.database_url)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

__all__ = ['Settings', 'get_settings', 'settings']
