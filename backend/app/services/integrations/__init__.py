"""Adapters for the report engine's external collaborators.

- TicketQueryService: returns tickets for a company and filter
- EmailDeliveryService: sends a rendered report to recipients
"""

from app.services.integrations.base import (
    EmailDeliveryService,
    Ticket,
    TicketQueryService,
)
from app.services.integrations.email import SMTPEmailDeliveryService
from app.services.integrations.tickets import HttpTicketQueryService

__all__ = [
    "EmailDeliveryService",
    "HttpTicketQueryService",
    "SMTPEmailDeliveryService",
    "Ticket",
    "TicketQueryService",
]
