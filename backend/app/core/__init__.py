"""Core application configuration and utilities.

This package contains core functionality including:
- Configuration management (config.py)
- Exception hierarchy (exceptions.py)
- Logging setup (logging.py)
"""

from app.core.config import settings

__all__ = [
    "settings",
]
