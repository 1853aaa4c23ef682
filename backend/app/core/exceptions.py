"""Common exception classes for the report engine.

Synchronous API failures (validation, not-found, conflict) are raised to the
caller and mapped to HTTP responses in ``app.main``. Run-time failures of
collaborators (``ExternalServiceError``) are caught by the execution runner
and recorded on the execution record instead of propagating.
"""

from __future__ import annotations

from typing import Any

# =============================================================================
# Base class
# =============================================================================


class AppError(Exception):
    """Application base exception."""


# =============================================================================
# Synchronous API errors
# =============================================================================


class ValidationError(AppError):
    """Raised when a schedule definition is rejected.

    Nothing is persisted when this error is raised.

    Attributes:
        field: Name of the offending field, if known.

    Example:
        >>> raise ValidationError("recipients must not be empty", field="recipients")
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidScheduleError(ValidationError):
    """Raised when a cron expression or interval cannot be evaluated.

    Attributes:
        expression: The rejected cron expression or interval value.
    """

    def __init__(
        self,
        message: str,
        expression: Any = None,
        field: str | None = None,
    ) -> None:
        self.expression = expression
        super().__init__(message, field=field)


class NotFoundError(AppError):
    """Raised when a resource does not exist (or has been deleted).

    Attributes:
        resource_type: Kind of resource (e.g. "scheduled_report")
        resource_id: Identifier that was looked up
    """

    def __init__(self, resource_type: str, resource_id: Any) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        label = resource_type.replace("_", " ").capitalize()
        super().__init__(f"{label} '{resource_id}' not found")


class ConflictError(AppError):
    """Raised when an operation collides with an in-flight execution.

    Attributes:
        resource_id: Identifier of the busy resource
        operation: The rejected operation (e.g. "delete", "update")
    """

    def __init__(self, resource_id: Any, operation: str) -> None:
        self.resource_id = resource_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} scheduled report '{resource_id}' "
            "while an execution is running"
        )


# =============================================================================
# Run-time errors
# =============================================================================


class ExternalServiceError(AppError):
    """A collaborator (ticket query or email delivery) failed during a run.

    Attributes:
        service: Short name of the failing collaborator
        status_code: HTTP status code when the failure was an HTTP response
    """

    service: str = "external service"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TicketQueryError(ExternalServiceError):
    """The Ticket Query Service failed or returned a malformed response."""

    service = "ticket query"


class EmailDeliveryError(ExternalServiceError):
    """The Email Delivery Service rejected or failed to send a report."""

    service = "email delivery"


class SchedulingError(AppError):
    """No matching instant exists within the cron lookahead window.

    Attributes:
        expression: The cron expression that never fires
        lookahead_days: Size of the searched window in days
    """

    def __init__(self, expression: str, lookahead_days: int) -> None:
        self.expression = expression
        self.lookahead_days = lookahead_days
        super().__init__(
            f"Cron expression '{expression}' has no matching time "
            f"within {lookahead_days} days"
        )


# =============================================================================
# Exports
# =============================================================================


__all__ = [
    "AppError",
    "ConflictError",
    "EmailDeliveryError",
    "ExternalServiceError",
    "InvalidScheduleError",
    "NotFoundError",
    "SchedulingError",
    "TicketQueryError",
    "ValidationError",
]
