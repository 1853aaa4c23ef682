"""Report engine wiring and lifecycle.

``ReportEngine`` builds the schedule store, execution runner, scheduler
loop and manual trigger around one shared lock registry, and is stored on
``app.state.report_engine`` by the application lifespan.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.base import utc_now
from app.services.integrations.base import EmailDeliveryService, TicketQueryService
from app.services.integrations.email import SMTPEmailDeliveryService
from app.services.integrations.tickets import HttpTicketQueryService
from app.services.schedule.execution_log import ExecutionLogStore
from app.services.schedule.locks import ScheduleLockRegistry
from app.services.schedule.manual import ManualTrigger
from app.services.schedule.runner import ExecutionRunner
from app.services.schedule.scheduler import SchedulerLoop
from app.services.schedule.service import ScheduleStore

logger = logging.getLogger(__name__)


class ReportEngine:
    """Container for the scheduled report components.

    Attributes:
        locks: Per-schedule lock registry shared by every component
        store: ScheduleStore
        executions: ExecutionLogStore
        runner: ExecutionRunner
        loop: SchedulerLoop
        manual: ManualTrigger
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tickets: TicketQueryService,
        email: EmailDeliveryService,
        *,
        clock: Callable[[], datetime] = utc_now,
        lookahead_days: int | None = None,
        scheduler_enabled: bool | None = None,
        tick_seconds: int | None = None,
        max_workers: int | None = None,
        queue_size: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.tickets = tickets
        self.email = email
        self.clock = clock

        self.locks = ScheduleLockRegistry()
        self.store = ScheduleStore(self.locks, clock=clock, lookahead_days=lookahead_days)
        self.executions = ExecutionLogStore
        self.runner = ExecutionRunner(
            session_factory,
            self.store,
            tickets,
            email,
            self.locks,
            clock=clock,
        )
        self.loop = SchedulerLoop(
            session_factory,
            self.store,
            self.runner,
            self.locks,
            tick_seconds=tick_seconds,
            max_workers=max_workers,
            queue_size=queue_size,
            enabled=scheduler_enabled,
            clock=clock,
        )
        self.manual = ManualTrigger(self.store, self.runner)

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> ReportEngine:
        """Build an engine with the HTTP ticket client and SMTP delivery."""
        return cls(
            session_factory,
            HttpTicketQueryService(),
            SMTPEmailDeliveryService(),
        )

    async def start(self) -> None:
        """Recover interrupted executions and start the scheduler loop."""
        async with self.session_factory() as db:
            await self.executions.recover_interrupted(db, self.clock())
            await db.commit()
        await self.loop.start()

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Stop accepting work and wait for in-flight runs."""
        await self.loop.shutdown(timeout=timeout)
        await self.manual.shutdown(timeout=timeout)

        aclose = getattr(self.tickets, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("Report engine stopped")

    def status(self) -> dict[str, Any]:
        """Scheduler status for the health endpoint."""
        return {
            **self.loop.status(),
            "active_locks": len(self.locks),
            "pending_manual_runs": self.manual.pending,
        }


__all__ = ["ReportEngine"]
