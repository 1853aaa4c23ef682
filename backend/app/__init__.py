"""Ticket Report Scheduler backend application.

Scheduled generation and email delivery of support ticket reports.
"""

from app import db

__version__ = "0.1.0"

__all__ = [
    "db",
    "__version__",
]
