"""Database module.

This module provides database session management and engine configuration.
"""

from app.db.session import async_session, engine, get_db

__all__ = [
    "engine",
    "async_session",
    "get_db",
]
