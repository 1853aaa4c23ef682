"""Utility functions and helpers."""

from app.utils.email import is_valid_email_format, normalize_email, validate_recipients

__all__ = [
    "normalize_email",
    "is_valid_email_format",
    "validate_recipients",
]
