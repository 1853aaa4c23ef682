"""Collaborator interfaces used by the execution runner.

Implementations raise ``TicketQueryError`` / ``EmailDeliveryError`` on
failure; the runner records those on the execution instead of
propagating them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from pydantic import ConfigDict, Field

from app.schemas.base import BaseSchema


class Ticket(BaseSchema):
    """A ticket as returned by the ticket query service.

    Only the fields used by report rendering are declared; anything else
    the service returns is kept as extra data.
    """

    model_config = ConfigDict(extra="allow")

    id: int | str | None = None
    ticket_id: str | None = None
    ticket_number: str | None = None
    status: str | None = None
    category: str | None = None
    priority: str | None = None
    created_by: str | None = None
    assigned_to: str | None = None
    comments: str | None = None
    created_date_ts: datetime | None = Field(
        default=None,
        description="Creation time of the ticket in the source system",
    )
    age_seconds: float | None = Field(default=None, ge=0)

    @property
    def reference(self) -> str:
        """Best available human-facing identifier."""
        for value in (self.ticket_number, self.ticket_id, self.id):
            if value not in (None, ""):
                return str(value)
        return "-"


@runtime_checkable
class TicketQueryService(Protocol):
    """Returns tickets matching ``{company_id, filters}``."""

    async def fetch_tickets(
        self,
        company_id: int,
        filters: dict[str, Any],
    ) -> list[Ticket]:
        """Fetch tickets.

        Raises:
            TicketQueryError: Timeout, non-2xx response or malformed body.
        """
        ...


@runtime_checkable
class EmailDeliveryService(Protocol):
    """Sends ``{recipients, cc_recipients, subject, body}``."""

    async def send(
        self,
        recipients: list[str],
        cc_recipients: list[str],
        subject: str,
        body: str,
    ) -> None:
        """Deliver one message.

        Raises:
            EmailDeliveryError: Delivery was rejected or timed out.
        """
        ...


__all__ = ["EmailDeliveryService", "Ticket", "TicketQueryService"]
