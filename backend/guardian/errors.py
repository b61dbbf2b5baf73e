"""
Application error taxonomy.

Every error carries a user-safe ``message``; anything more detailed
goes to the logs, never to the caller.
"""
from typing import Any, Dict, Optional


class GuardianError(Exception):
    """Base exception for application errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(GuardianError):
    """Missing or malformed required field. Reported, never retried."""
    status_code = 400


class AuthorizationError(GuardianError):
    """Claimed identity does not match the registered session or owner."""
    status_code = 403


class NotFoundError(GuardianError):
    """Unknown booking, alert or session."""
    status_code = 404


class ProviderError(GuardianError):
    """Upstream reply provider failed. Recovered by falling through the chain."""
    status_code = 502

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.provider = provider


class ProviderNotConfiguredError(ProviderError):
    """Provider has no credentials and is skipped."""
    pass


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its timeout."""
    pass


class StorageError(GuardianError):
    """Both storage backends failed the operation."""
    status_code = 500


__all__ = [
    'GuardianError',
    'ValidationError',
    'AuthorizationError',
    'NotFoundError',
    'ProviderError',
    'ProviderNotConfiguredError',
    'ProviderTimeoutError',
    'StorageError'
]
