"""
Neura Guardian assistant backend
"""

__version__ = "1.0.0"
__author__ = "Neura Guardian Team"

# Application metadata
APP_NAME = "Neura-X Guardian Angel"
APP_DESCRIPTION = "Conversational assistant backend with chat, voice, booking and emergency alerts"

__all__ = [
    "APP_NAME",
    "APP_DESCRIPTION",
    "__version__",
]
