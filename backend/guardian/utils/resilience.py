"""
Provider call wrapper with timeout, retry and circuit breaker.
Every reply provider goes through call_with_resilience() so a stalled or
failing upstream turns into a fast, typed failure the orchestrator can
fall through on.

Version: 1.0.0
"""
import asyncio
import logging
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log
)
from aiobreaker import CircuitBreaker, CircuitBreakerError

from ..errors import ProviderError, ProviderTimeoutError
from .telemetry import track_provider_call

logger = logging.getLogger(__name__)


# ===========================
# Circuit Breaker Configuration
# ===========================

class CircuitBreakerConfig:
    """Configuration for circuit breakers."""

    def __init__(
        self,
        fail_max: int = 5,
        reset_timeout: int = 60,
        exclude: Tuple[Type[BaseException], ...] = (),
        name: Optional[str] = None
    ):
        """
        Args:
            fail_max: Consecutive failures before opening the circuit
            reset_timeout: Seconds before a half-open trial call
            exclude: Exception types that do not count as failures
            name: Circuit breaker name
        """
        self.fail_max = fail_max
        self.reset_timeout = reset_timeout
        self.exclude = exclude
        self.name = name or "default"


# Global circuit breakers per provider
_circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    provider_name: str,
    config: Optional[CircuitBreakerConfig] = None
) -> CircuitBreaker:
    """
    Get or create the async circuit breaker for a provider.

    Args:
        provider_name: Provider identifier
        config: Used only when the breaker is first created

    Returns:
        Shared breaker instance
    """
    if provider_name not in _circuit_breakers:
        if config is None:
            config = CircuitBreakerConfig(name=provider_name)

        _circuit_breakers[provider_name] = CircuitBreaker(
            fail_max=config.fail_max,
            timeout_duration=timedelta(seconds=config.reset_timeout),
            exclude=list(config.exclude),
            name=config.name
        )

        logger.info(
            f"Created circuit breaker for '{provider_name}': "
            f"fail_max={config.fail_max}, reset_timeout={config.reset_timeout}s"
        )

    return _circuit_breakers[provider_name]


def reset_circuit_breaker(provider_name: str) -> None:
    """Drop a provider's breaker so the next call starts closed."""
    if _circuit_breakers.pop(provider_name, None) is not None:
        logger.info(f"Reset circuit breaker for '{provider_name}'")


def reset_all_circuit_breakers() -> None:
    _circuit_breakers.clear()


# ===========================
# Retry Configuration
# ===========================

class RetryConfig:
    """Configuration for retry logic."""

    def __init__(
        self,
        max_attempts: int = 2,
        wait_multiplier: float = 0.5,
        wait_min: float = 0.5,
        wait_max: float = 4.0,
        retry_exceptions: Tuple[Type[BaseException], ...] = (ConnectionError, ProviderTimeoutError)
    ):
        """
        Args:
            max_attempts: Total attempts including the first
            wait_multiplier: Exponential backoff multiplier
            wait_min: Minimum wait between attempts (seconds)
            wait_max: Maximum wait between attempts (seconds)
            retry_exceptions: Transport-level exception types worth retrying
        """
        self.max_attempts = max_attempts
        self.wait_multiplier = wait_multiplier
        self.wait_min = wait_min
        self.wait_max = wait_max
        self.retry_exceptions = retry_exceptions


def create_retry_decorator(config: RetryConfig):
    """Build a tenacity decorator from a RetryConfig."""
    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.wait_multiplier,
            min=config.wait_min,
            max=config.wait_max
        ),
        retry=retry_if_exception_type(config.retry_exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )


# ===========================
# Call wrapper
# ===========================

async def call_with_resilience(
    provider_name: str,
    func: Callable[..., Awaitable[Any]],
    *args,
    timeout: Optional[float] = None,
    retry_config: Optional[RetryConfig] = None,
    breaker_config: Optional[CircuitBreakerConfig] = None,
    **kwargs
) -> Any:
    """
    Await func(*args, **kwargs) under timeout, retry and circuit breaker.

    Raises:
        ProviderTimeoutError: Every attempt timed out
        ProviderError: Circuit open, or the provider raised
    """
    breaker = get_circuit_breaker(provider_name, breaker_config)
    start_time = time.time()

    async def attempt():
        if not timeout:
            return await func(*args, **kwargs)
        try:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(
                f"Provider {provider_name} timed out after {timeout}s",
                provider=provider_name
            )

    if retry_config:
        attempt = create_retry_decorator(retry_config)(attempt)

    try:
        result = await breaker.call_async(attempt)
    except CircuitBreakerError as e:
        track_provider_call(provider_name, "circuit_open", time.time() - start_time)
        logger.warning(
            f"Circuit breaker open for '{provider_name}': {e}",
            extra={"provider": provider_name, "breaker_state": str(breaker.current_state)}
        )
        raise ProviderError(f"Provider {provider_name} temporarily unavailable", provider=provider_name) from e
    except ProviderTimeoutError:
        track_provider_call(provider_name, "timeout", time.time() - start_time)
        raise
    except ProviderError:
        track_provider_call(provider_name, "error", time.time() - start_time)
        raise
    except Exception as e:
        track_provider_call(provider_name, "error", time.time() - start_time)
        raise ProviderError(
            f"Provider {provider_name} failed",
            provider=provider_name,
            details={"error_type": type(e).__name__}
        ) from e

    track_provider_call(provider_name, "success", time.time() - start_time)
    return result


__all__ = [
    'CircuitBreakerConfig',
    'RetryConfig',
    'call_with_resilience',
    'create_retry_decorator',
    'get_circuit_breaker',
    'reset_circuit_breaker',
    'reset_all_circuit_breakers'
]
