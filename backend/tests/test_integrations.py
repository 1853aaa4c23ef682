"""Tests for the ticket query client and SMTP delivery service."""

import smtplib
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest

from app.core.exceptions import EmailDeliveryError, TicketQueryError
from app.services.integrations.email import SMTPEmailDeliveryService
from app.services.integrations.tickets import HttpTicketQueryService

TICKETS = [
    {"id": 1, "ticket_number": "T-101", "status": "open", "category": "billing"},
    {"id": 2, "ticket_number": "T-102", "status": "open", "priority": "high"},
]


def ticket_service(handler, **kwargs: Any) -> HttpTicketQueryService:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://tickets.test"
    )
    return HttpTicketQueryService(
        base_url="http://tickets.test", timeout=2.0, limit=200, client=client, **kwargs
    )


# =============================================================================
# Ticket query service
# =============================================================================


class TestHttpTicketQueryService:
    """Test suite for HttpTicketQueryService."""

    def test_build_params(self):
        service = HttpTicketQueryService(base_url="http://tickets.test", limit=50)

        params = service.build_params(
            7,
            {"status": "open", "category": None, "date_range_days": 7},
            now=datetime(2024, 1, 15, 10, 0, tzinfo=UTC),
        )

        assert params == {
            "company_id": 7,
            "limit": 50,
            "status": "open",
            "date_start": "2024-01-08",
        }

    @pytest.mark.asyncio
    async def test_fetch_sends_filters_and_parses_list(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=TICKETS)

        service = ticket_service(handler)
        tickets = await service.fetch_tickets(3, {"status": "open", "category": "billing"})
        await service.aclose()

        assert [t.reference for t in tickets] == ["T-101", "T-102"]
        assert tickets[1].priority == "high"
        assert seen[0].url.path == "/tickets"
        assert dict(seen[0].url.params) == {
            "company_id": "3",
            "limit": "200",
            "status": "open",
            "category": "billing",
        }

    @pytest.mark.asyncio
    async def test_fetch_unwraps_items(self):
        service = ticket_service(lambda request: httpx.Response(200, json={"items": TICKETS}))

        tickets = await service.fetch_tickets(1, {})

        assert len(tickets) == 2

    @pytest.mark.asyncio
    async def test_non_2xx_raises_with_status(self):
        service = ticket_service(lambda request: httpx.Response(503, text="maintenance"))

        with pytest.raises(TicketQueryError) as exc_info:
            await service.fetch_tickets(1, {})

        assert exc_info.value.status_code == 503
        assert "HTTP 503: maintenance" in str(exc_info.value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>not json</html>"),
            httpx.Response(200, json={"tickets": "nope"}),
            httpx.Response(200, json=[{"age_seconds": -5}]),
        ],
    )
    async def test_malformed_body_raises(self, response: httpx.Response):
        service = ticket_service(lambda request: response)

        with pytest.raises(TicketQueryError, match="Malformed response body"):
            await service.fetch_tickets(1, {})

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        service = ticket_service(handler)

        with pytest.raises(TicketQueryError, match="Request timeout after 2s"):
            await service.fetch_tickets(1, {})

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        service = ticket_service(handler)

        with pytest.raises(TicketQueryError, match="Request failed: ConnectError"):
            await service.fetch_tickets(1, {})


# =============================================================================
# SMTP delivery service
# =============================================================================


class FakeSMTP:
    """Stand-in for ``smtplib.SMTP`` that records the session."""

    instances: list["FakeSMTP"] = []
    error: Exception | None = None

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.login_args: tuple[str, str] | None = None
        self.sent: list[tuple[Any, str, list[str]]] = []
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def starttls(self) -> None:
        self.started_tls = True

    def login(self, user: str, password: str) -> None:
        self.login_args = (user, password)

    def send_message(self, msg, from_addr: str, to_addrs: list[str]) -> None:
        if FakeSMTP.error is not None:
            raise FakeSMTP.error
        self.sent.append((msg, from_addr, to_addrs))


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.error = None
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


@pytest.fixture
def email_service() -> SMTPEmailDeliveryService:
    return SMTPEmailDeliveryService(
        "smtp.test",
        2525,
        "reports@example.com",
        smtp_user="mailer",
        smtp_password="s3cret",
        use_tls=True,
        timeout=5,
    )


class TestSMTPEmailDeliveryService:
    """Test suite for SMTPEmailDeliveryService."""

    def test_build_message_headers(self, email_service):
        msg = email_service.build_message(
            ["a@example.com", "b@example.com"], ["c@example.com"], "Digest", "Body text"
        )

        assert msg["Subject"] == "Digest"
        assert msg["From"] == "reports@example.com"
        assert msg["To"] == "a@example.com, b@example.com"
        assert msg["Cc"] == "c@example.com"
        assert msg.get_content().strip() == "Body text"

    def test_build_message_without_cc(self, email_service):
        msg = email_service.build_message(["a@example.com"], [], "Digest", "Body")

        assert msg["Cc"] is None

    @pytest.mark.asyncio
    async def test_send_delivers_to_to_and_cc(self, email_service, fake_smtp):
        await email_service.send(["a@example.com"], ["c@example.com"], "Digest", "Body")

        [session] = fake_smtp.instances
        assert (session.host, session.port, session.timeout) == ("smtp.test", 2525, 5)
        assert session.started_tls is True
        assert session.login_args == ("mailer", "s3cret")
        [(msg, from_addr, to_addrs)] = session.sent
        assert from_addr == "reports@example.com"
        assert to_addrs == ["a@example.com", "c@example.com"]
        assert msg["Subject"] == "Digest"

    @pytest.mark.asyncio
    async def test_smtp_rejection_raises(self, email_service, fake_smtp):
        fake_smtp.error = smtplib.SMTPRecipientsRefused({"a@example.com": (550, b"no")})

        with pytest.raises(EmailDeliveryError, match="SMTP error"):
            await email_service.send(["a@example.com"], [], "Digest", "Body")

    @pytest.mark.asyncio
    async def test_connection_failure_raises(self, email_service, fake_smtp):
        fake_smtp.error = ConnectionRefusedError("refused")

        with pytest.raises(EmailDeliveryError, match="SMTP connection to smtp.test:2525"):
            await email_service.send(["a@example.com"], [], "Digest", "Body")
