"""
API module for Neura Guardian
"""

from .websocket import websocket_endpoint, ConnectionManager
from .dispatcher import CommandDispatcher
from .routes import chat, booking, voice, health

__all__ = [
    "websocket_endpoint",
    "ConnectionManager",
    "CommandDispatcher",
    "chat",
    "booking",
    "voice",
    "health",
]
