"""
Session management package.
Tracks live client connections and their fan-out groups.

Version: 1.0.0
"""

from .registry import SessionRecord, SessionRegistry, user_group, session_group

__all__ = [
    'SessionRecord',
    'SessionRegistry',
    'user_group',
    'session_group'
]
