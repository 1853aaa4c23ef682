"""Execution runner: one fetch, render and deliver cycle for a schedule.

The runner is shared by the scheduler loop and manual triggers. Each call
holds the schedule's lock for its whole duration, writes exactly one
execution record (unless the run is skipped) and always advances the
schedule's run times, whether the run succeeded or failed.

Database sessions are short: one to load the schedule and open the
execution, one to finalize it. No connection is held while waiting on
the ticket query or email delivery services.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import ExternalServiceError, NotFoundError
from app.models.base import utc_now
from app.models.enums import ExecutionStatus, TriggerSource
from app.models.schedule import ScheduledReport
from app.services.integrations.base import (
    EmailDeliveryService,
    Ticket,
    TicketQueryService,
)
from app.services.schedule.execution_log import ExecutionLogStore
from app.services.schedule.locks import ScheduleLockRegistry
from app.services.schedule.rendering import RenderedReport, render_report
from app.services.schedule.service import ScheduleStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Added to collaborator timeouts so their own timeout errors win the race
TIMEOUT_GRACE_SECONDS = 5.0


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one ``ExecutionRunner.run`` call.

    ``execution_id`` and ``status`` are None when the run was skipped
    before an execution record was written.
    """

    schedule_id: int
    trigger_source: TriggerSource
    execution_id: int | None = None
    status: ExecutionStatus | None = None
    tickets_count: int | None = None
    recipients_count: int | None = None
    error_message: str | None = None
    duration_seconds: float | None = None
    skipped_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.execution_id is None

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS


class ExecutionRunner:
    """Runs scheduled reports.

    Attributes:
        session_factory: Source of short-lived database sessions
        store: Schedule store used to load schedules and advance run times
        tickets: Ticket query collaborator
        email: Email delivery collaborator
        locks: Per-schedule lock registry
        clock: Source of "now" (aware UTC)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: ScheduleStore,
        tickets: TicketQueryService,
        email: EmailDeliveryService,
        locks: ScheduleLockRegistry,
        clock: Callable[[], datetime] = utc_now,
        ticket_timeout: float | None = None,
        email_timeout: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.tickets = tickets
        self.email = email
        self.locks = locks
        self.clock = clock
        self.ticket_timeout = (
            ticket_timeout or settings.TICKET_SERVICE_TIMEOUT + TIMEOUT_GRACE_SECONDS
        )
        self.email_timeout = email_timeout or settings.EMAIL_TIMEOUT + TIMEOUT_GRACE_SECONDS

    async def run(
        self,
        schedule_id: int,
        trigger_source: TriggerSource = TriggerSource.SCHEDULE,
        *,
        lock_held: bool = False,
    ) -> ExecutionResult:
        """Run one execution of ``schedule_id``.

        Args:
            schedule_id: Schedule to run
            trigger_source: SCHEDULE for timer runs, MANUAL for "run now"
            lock_held: The caller already owns the schedule's lock (the
                scheduler loop acquires it before dispatching); the runner
                releases it either way.

        Returns:
            ExecutionResult: Terminal outcome, or a skipped result.
        """
        if not lock_held:
            await self.locks.acquire(schedule_id)
        try:
            return await self._run_locked(schedule_id, TriggerSource(trigger_source))
        finally:
            self.locks.release(schedule_id)

    async def _run_locked(
        self,
        schedule_id: int,
        trigger_source: TriggerSource,
    ) -> ExecutionResult:
        started_at = self.clock()

        async with self.session_factory() as db:
            try:
                schedule = await self.store.get(db, schedule_id)
            except NotFoundError:
                logger.warning(
                    f"Skipping run of missing scheduled report {schedule_id}",
                    extra={"context": {"schedule_id": str(schedule_id)}},
                )
                return ExecutionResult(
                    schedule_id, trigger_source, skipped_reason="not found"
                )

            if trigger_source is TriggerSource.SCHEDULE and not schedule.is_due(started_at):
                reason = "inactive" if not schedule.is_active else "not due"
                logger.info(
                    f"Skipping timer run of scheduled report {schedule_id}: {reason}",
                    extra={"context": {"schedule_id": str(schedule_id), "reason": reason}},
                )
                return ExecutionResult(schedule_id, trigger_source, skipped_reason=reason)

            execution = await ExecutionLogStore.start(db, schedule, trigger_source, started_at)
            execution_id = execution.id
            await db.commit()

        context = {
            "schedule_id": str(schedule_id),
            "execution_id": str(execution_id),
            "trigger_source": str(trigger_source),
        }
        logger.info(f"Execution {execution_id} started", extra={"context": context})

        error_message: str | None = None
        report: RenderedReport | None = None
        recipients = list(schedule.recipients or [])
        cc_recipients = list(schedule.cc_recipients or [])

        try:
            tickets = await self._call(
                self.tickets.fetch_tickets(schedule.company_id, dict(schedule.filters or {})),
                self.ticket_timeout,
            )
        except Exception as e:
            error_message = f"Ticket query failed: {self._describe(e)}"
            self._log_failure(e, error_message, context)
        else:
            try:
                report = self._render(schedule, tickets)
            except Exception as e:
                error_message = f"Report rendering failed: {self._describe(e)}"
                self._log_failure(e, error_message, context)

        if report is not None:
            try:
                await self._call(
                    self.email.send(recipients, cc_recipients, report.subject, report.body),
                    self.email_timeout,
                )
            except Exception as e:
                error_message = f"Email delivery failed: {self._describe(e)}"
                self._log_failure(e, error_message, context)

        finished_at = self.clock()
        async with self.session_factory() as db:
            if error_message is None and report is not None:
                execution = await ExecutionLogStore.finalize_success(
                    db,
                    execution_id,
                    tickets_count=report.tickets_count,
                    recipients_count=len(recipients) + len(cc_recipients),
                    finished_at=finished_at,
                )
            else:
                execution = await ExecutionLogStore.finalize_failure(
                    db,
                    execution_id,
                    error_message or "Execution failed",
                    finished_at=finished_at,
                )
            updated = await self.store.complete_run(db, schedule_id, finished_at)
            await db.commit()

        result = ExecutionResult(
            schedule_id=schedule_id,
            trigger_source=trigger_source,
            execution_id=execution_id,
            status=ExecutionStatus(execution.status),
            tickets_count=execution.tickets_count,
            recipients_count=execution.recipients_count,
            error_message=execution.error_message,
            duration_seconds=execution.duration_seconds,
        )

        log = logger.info if result.succeeded else logger.warning
        log(
            f"Execution {execution_id} finished with status {result.status}",
            extra={
                "context": {
                    **context,
                    "status": str(result.status),
                    "duration_seconds": result.duration_seconds,
                    "tickets_count": result.tickets_count,
                    "next_run": updated.next_run.isoformat() if updated.next_run else None,
                }
            },
        )
        return result

    def _render(self, schedule: ScheduledReport, tickets: list[Ticket]) -> RenderedReport:
        return render_report(schedule, tickets, generated_at=self.clock())

    @staticmethod
    async def _call(awaitable: Awaitable[T], timeout: float) -> T:
        return await asyncio.wait_for(awaitable, timeout=timeout)

    @staticmethod
    def _describe(error: Exception) -> str:
        if isinstance(error, TimeoutError):
            return "timed out"
        if isinstance(error, ExternalServiceError):
            return str(error) or type(error).__name__
        return f"{type(error).__name__}: {error}"

    @staticmethod
    def _log_failure(error: Exception, message: str, context: dict[str, str]) -> None:
        if isinstance(error, ExternalServiceError | TimeoutError):
            logger.warning(message, extra={"context": context})
        else:
            logger.exception(message, extra={"context": context})


__all__ = ["ExecutionResult", "ExecutionRunner"]
