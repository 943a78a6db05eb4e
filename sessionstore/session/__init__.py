"""
Session module: the session record access layer.
"""

from sessionstore.session.dao import SessionDao

__all__ = [
    "SessionDao",
]
