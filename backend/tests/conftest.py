"""pytest configuration and fixtures for the report scheduler tests.

Each test gets its own SQLite database file so that the runner, the
scheduler loop and the API can open independent sessions against it.
External collaborators (ticket query, email delivery) are replaced by
in-memory fakes, and time is driven by a settable clock.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, cast

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from starlette.types import ASGIApp

from app.db.session import build_session_factory, get_db
from app.main import app
from app.models import Base, ScheduledReport
from app.schemas.schedule import ScheduledReportCreate
from app.services.integrations.base import Ticket
from app.services.schedule.engine import ReportEngine

# 2024-01-15 is a Monday
START_TIME = datetime(2024, 1, 15, 10, 0, tzinfo=UTC)

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests",
    )


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class FixedClock:
    """Settable clock passed as ``clock=`` to the engine components."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return now


class FakeTicketService:
    """In-memory ticket query service.

    Attributes:
        tickets: Tickets returned by every call
        error: Raised instead of returning when set
        gate: When set, calls wait on it before returning
        calls: ``(company_id, filters)`` of every call
        max_active: Highest number of overlapping calls observed
    """

    def __init__(self, tickets: list[Ticket] | None = None) -> None:
        self.tickets = tickets if tickets is not None else []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[int, dict[str, Any]]] = []
        self.active = 0
        self.max_active = 0

    async def fetch_tickets(self, company_id: int, filters: dict[str, Any]) -> list[Ticket]:
        self.calls.append((company_id, dict(filters)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.error is not None:
                raise self.error
            return list(self.tickets)
        finally:
            self.active -= 1


class FakeEmailService:
    """In-memory email delivery service recording every message."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def send(
        self,
        recipients: list[str],
        cc_recipients: list[str],
        subject: str,
        body: str,
    ) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(
            {
                "recipients": list(recipients),
                "cc_recipients": list(cc_recipients),
                "subject": subject,
                "body": body,
            }
        )


# =============================================================================
# DATABASE FIXTURES (SQLite file per test)
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Create an async SQLite engine backed by a temporary file.

    All tables are created on setup; the file is discarded with tmp_path.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'reports.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine (same settings as production)."""
    return build_session_factory(async_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    async_session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Provide a database session for direct service calls."""
    async with async_session_maker() as session:
        yield session


# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START_TIME)


@pytest.fixture
def sample_tickets() -> list[Ticket]:
    """Tickets of varying status, category and age."""
    return [
        Ticket(id=101, ticket_number="T-101", status="open", category="billing",
               age_seconds=86400),
        Ticket(id=102, ticket_number="T-102", status="open", category="network",
               age_seconds=3 * 86400),
        Ticket(id=103, ticket_number="T-103", status="closed", category="billing",
               assigned_to="alice", age_seconds=2 * 86400),
    ]


@pytest.fixture
def fake_tickets(sample_tickets: list[Ticket]) -> FakeTicketService:
    return FakeTicketService(sample_tickets)


@pytest.fixture
def fake_email() -> FakeEmailService:
    return FakeEmailService()


@pytest_asyncio.fixture(scope="function")
async def report_engine(
    async_session_maker: async_sessionmaker[AsyncSession],
    fake_tickets: FakeTicketService,
    fake_email: FakeEmailService,
    clock: FixedClock,
) -> AsyncGenerator[ReportEngine]:
    """Started report engine with the timer disabled.

    Tests drive the scheduler loop by calling ``report_engine.loop.tick()``.
    """
    engine = ReportEngine(
        async_session_maker,
        fake_tickets,
        fake_email,
        clock=clock,
        scheduler_enabled=False,
        max_workers=2,
        queue_size=10,
    )
    await engine.start()
    try:
        yield engine
    finally:
        await engine.shutdown(timeout=5)


@pytest.fixture
def schedule_payload() -> dict[str, Any]:
    """Valid create payload for a daily 09:00 UTC cron schedule."""
    return {
        "company_id": 1,
        "company_name": "Acme Corp",
        "name": "Daily digest",
        "description": "Open tickets for the support leads",
        "report_type": "daily",
        "schedule_type": "cron",
        "cron_expression": "0 9 * * *",
        "recipients": ["leads@example.com"],
        "cc_recipients": ["manager@example.com"],
        "filters": {"status": "open"},
        "created_by": "ops@example.com",
    }


@pytest.fixture
def create_schedule(
    report_engine: ReportEngine,
    async_session_maker: async_sessionmaker[AsyncSession],
    schedule_payload: dict[str, Any],
) -> Callable[..., Awaitable[ScheduledReport]]:
    """Factory creating and committing a schedule through the store.

    Keyword arguments override fields of ``schedule_payload``.
    """

    async def _create(**overrides: Any) -> ScheduledReport:
        data = ScheduledReportCreate(**{**schedule_payload, **overrides})
        async with async_session_maker() as db:
            schedule = await report_engine.store.create(db, data)
            await db.commit()
        return schedule

    return _create


# =============================================================================
# HTTP CLIENT FIXTURES
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_client(
    report_engine: ReportEngine,
    async_session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client for testing API endpoints.

    Uses ASGI transport to test the FastAPI app without running a server.
    The lifespan is not run; the test engine is installed on app.state and
    each request gets its own session on the test database.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        async with async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.report_engine = report_engine

    try:
        transport = ASGITransport(app=cast("ASGIApp", app))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        app.state.report_engine = None
