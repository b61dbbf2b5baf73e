"""
Utility modules for the application.
Provides resilience wrappers, telemetry, and middleware.

Version: 1.0.0
"""
from datetime import datetime, timezone


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = ['utcnow_iso']
