"""HTTP client for the ticket query service."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import TicketQueryError
from app.models.base import utc_now
from app.services.integrations.base import Ticket

logger = logging.getLogger(__name__)

_TICKET_LIST = TypeAdapter(list[Ticket])


class HttpTicketQueryService:
    """Fetch tickets with ``GET {base_url}/tickets``.

    Query parameters are ``company_id`` plus the schedule filter:
    ``status``, ``category`` and ``date_start`` (derived from
    ``date_range_days``), capped by ``limit``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        api_key: str | None = None,
        limit: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.TICKET_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.TICKET_SERVICE_TIMEOUT
        self.api_key = api_key if api_key is not None else settings.TICKET_SERVICE_API_KEY
        self.limit = limit or settings.TICKET_QUERY_LIMIT
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["X-API-Key"] = self.api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=50),
            )
        return self._client

    def build_params(
        self,
        company_id: int,
        filters: dict[str, Any],
        now: datetime | None = None,
    ) -> dict[str, str | int]:
        """Translate a schedule filter into query parameters."""
        params: dict[str, str | int] = {"company_id": company_id, "limit": self.limit}
        for key in ("status", "category"):
            if filters.get(key):
                params[key] = filters[key]

        days = filters.get("date_range_days")
        if days:
            start = (now or utc_now()) - timedelta(days=int(days))
            params["date_start"] = start.date().isoformat()
        return params

    async def fetch_tickets(
        self,
        company_id: int,
        filters: dict[str, Any],
    ) -> list[Ticket]:
        """Fetch tickets for a company.

        Raises:
            TicketQueryError: Timeout, transport error, non-2xx status or a
                body that is not a list of tickets.
        """
        client = await self._get_client()
        params = self.build_params(company_id, filters)

        try:
            response = await client.get("/tickets", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            raise TicketQueryError(f"Request timeout after {self.timeout:.0f}s: {e}") from e
        except httpx.HTTPStatusError as e:
            raise TicketQueryError(
                f"HTTP {e.response.status_code}: {e.response.text[:500]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TicketQueryError(f"Request failed: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise TicketQueryError(f"Malformed response body: {e}") from e

        # Some deployments wrap the list: {"items": [...]}
        if isinstance(payload, dict) and "items" in payload:
            payload = payload["items"]

        try:
            tickets = _TICKET_LIST.validate_python(payload)
        except PydanticValidationError as e:
            raise TicketQueryError(
                f"Malformed response body: {e.error_count()} validation error(s)"
            ) from e

        logger.debug(
            f"Fetched {len(tickets)} tickets for company {company_id}",
            extra={"context": {"company_id": company_id, "tickets": len(tickets)}},
        )
        return tickets

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["HttpTicketQueryService"]
