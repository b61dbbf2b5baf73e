"""
API routes module initialization.
"""
from . import chat, booking, voice, health

__all__ = ["chat", "booking", "voice", "health"]
