"""Email address validation and normalization utilities.

This module provides the checks applied to report recipients before a
schedule is stored.

Features:
- Email normalization (trim whitespace)
- Email format validation using regex
- Recipient list validation (order and duplicates preserved)
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Final

from app.core.exceptions import ValidationError

# Email validation regex pattern
# Supports: local@domain, local+tag@domain, first.last@domain.co.uk
EMAIL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
)


def normalize_email(email: str | None) -> str:
    """Normalize email address for storage.

    Only surrounding whitespace is removed. Case is kept so that the stored
    recipient list round-trips exactly as the client sent it.

    Examples:
        >>> normalize_email("  ops@example.com  ")
        'ops@example.com'
        >>> normalize_email(None)
        ''
    """
    if not email:
        return ""
    return email.strip()


def is_valid_email_format(email: str | None) -> bool:
    """Validate email format using regex pattern.

    This function checks if the email matches the expected format
    but does not verify that the email address actually exists.

    Examples:
        >>> is_valid_email_format("user@example.com")
        True
        >>> is_valid_email_format("invalid-email")
        False
        >>> is_valid_email_format("user+tag@example.co.uk")
        True
    """
    if not email:
        return False
    return EMAIL_PATTERN.match(email) is not None


def validate_recipients(
    addresses: Iterable[str] | None,
    field: str = "recipients",
    required: bool = True,
) -> list[str]:
    """Normalize a recipient list and reject malformed addresses.

    Order is preserved.

    Args:
        addresses: Raw addresses
        field: Field name reported in the error
        required: Whether an empty list is an error

    Returns:
        list[str]: Normalized addresses

    Raises:
        ValidationError: Empty required list or malformed address.
    """
    result: list[str] = []
    for raw in addresses or []:
        email = normalize_email(raw)
        if not is_valid_email_format(email):
            raise ValidationError(f"Invalid email address in {field}: {raw!r}", field=field)
        result.append(email)

    if required and not result:
        raise ValidationError(f"{field} must contain at least one address", field=field)
    return result


__all__ = [
    "EMAIL_PATTERN",
    "is_valid_email_format",
    "normalize_email",
    "validate_recipients",
]
