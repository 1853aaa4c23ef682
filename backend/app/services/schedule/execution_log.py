"""Execution log store for scheduled report runs.

Executions are appended when a run starts (``running``) and finalized
exactly once to ``success`` or ``failed``. Nothing here deletes rows.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import case, func, select

from app.core.exceptions import NotFoundError
from app.models.base import utc_now
from app.models.enums import ExecutionStatus, TriggerSource
from app.models.execution import ReportExecution
from app.models.schedule import ScheduledReport
from app.schemas.execution import ReportExecutionResponse
from app.schemas.schedule import ScheduleStatistics

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Execution interrupted by service restart"


class ExecutionLogStore:
    """Service for managing ReportExecution records.

    Methods take the caller's session and only flush; committing is the
    caller's responsibility.
    """

    @staticmethod
    async def start(
        db: AsyncSession,
        schedule: ScheduledReport,
        trigger_source: TriggerSource,
        started_at: datetime | None = None,
    ) -> ReportExecution:
        """Create a RUNNING execution for ``schedule``.

        Args:
            db: Database session.
            schedule: Schedule being run.
            trigger_source: Timer or manual trigger.
            started_at: Start instant (defaults to now).

        Returns:
            The created ReportExecution.
        """
        execution = ReportExecution(
            schedule_id=schedule.id,
            company_id=schedule.company_id,
            trigger_source=trigger_source,
            execution_time=started_at or utc_now(),
            status=ExecutionStatus.RUNNING,
        )
        db.add(execution)
        await db.flush()
        return execution

    @staticmethod
    async def get(
        db: AsyncSession,
        execution_id: int,
    ) -> ReportExecution | None:
        """Get an execution by ID."""
        result = await db.execute(
            select(ReportExecution).where(ReportExecution.id == execution_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _get_or_raise(
        db: AsyncSession,
        execution_id: int,
    ) -> ReportExecution:
        execution = await ExecutionLogStore.get(db, execution_id)
        if execution is None:
            raise NotFoundError("report_execution", execution_id)
        return execution

    @staticmethod
    async def finalize_success(
        db: AsyncSession,
        execution_id: int,
        tickets_count: int,
        recipients_count: int,
        finished_at: datetime | None = None,
    ) -> ReportExecution:
        """Finalize an execution as SUCCESS.

        Raises:
            NotFoundError: Unknown execution.
            ValueError: Execution already terminal.
        """
        execution = await ExecutionLogStore._get_or_raise(db, execution_id)
        execution.succeed(tickets_count, recipients_count, finished_at)
        await db.flush()
        return execution

    @staticmethod
    async def finalize_failure(
        db: AsyncSession,
        execution_id: int,
        error_message: str,
        finished_at: datetime | None = None,
    ) -> ReportExecution:
        """Finalize an execution as FAILED.

        Raises:
            NotFoundError: Unknown execution.
            ValueError: Execution already terminal.
        """
        execution = await ExecutionLogStore._get_or_raise(db, execution_id)
        execution.fail(error_message, finished_at)
        await db.flush()
        return execution

    @staticmethod
    async def list_for_schedule(
        db: AsyncSession,
        schedule_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ReportExecution]:
        """List executions of one schedule, newest first."""
        result = await db.execute(
            select(ReportExecution)
            .where(ReportExecution.schedule_id == schedule_id)
            .order_by(
                ReportExecution.execution_time.desc(),
                ReportExecution.id.desc(),
            )
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_recent(
        db: AsyncSession,
        company_id: int | None = None,
        status: ExecutionStatus | None = None,
        limit: int = 50,
    ) -> list[ReportExecutionResponse]:
        """List recent executions across schedules.

        The schedule table is joined so each item carries the schedule and
        company names without a per-row lookup.
        """
        query = select(
            ReportExecution,
            ScheduledReport.name,
            ScheduledReport.company_name,
        ).join(ScheduledReport, ReportExecution.schedule_id == ScheduledReport.id)

        if company_id is not None:
            query = query.where(ReportExecution.company_id == company_id)
        if status is not None:
            query = query.where(ReportExecution.status == status)

        query = query.order_by(ReportExecution.execution_time.desc()).limit(limit)
        result = await db.execute(query)

        return [
            ReportExecutionResponse.model_validate(execution).model_copy(
                update={"schedule_name": schedule_name, "company_name": company_name}
            )
            for execution, schedule_name, company_name in result.all()
        ]

    @staticmethod
    async def has_running(db: AsyncSession, schedule_id: int) -> bool:
        """Check whether a RUNNING execution exists for ``schedule_id``."""
        result = await db.execute(
            select(func.count(ReportExecution.id))
            .where(ReportExecution.schedule_id == schedule_id)
            .where(ReportExecution.status == ExecutionStatus.RUNNING)
        )
        return result.scalar_one() > 0

    @staticmethod
    async def statistics(
        db: AsyncSession,
        schedule_id: int,
    ) -> ScheduleStatistics:
        """Aggregate execution statistics for a schedule."""
        result = await db.execute(
            select(
                func.count(ReportExecution.id).label("total_runs"),
                func.sum(
                    case((ReportExecution.status == ExecutionStatus.SUCCESS, 1), else_=0)
                ).label("successful_runs"),
                func.sum(
                    case((ReportExecution.status == ExecutionStatus.FAILED, 1), else_=0)
                ).label("failed_runs"),
                func.avg(ReportExecution.duration_seconds).label("avg_duration"),
            ).where(ReportExecution.schedule_id == schedule_id)
        )
        row = result.one()

        total_runs = row.total_runs or 0
        successful_runs = row.successful_runs or 0
        failed_runs = row.failed_runs or 0
        finished = successful_runs + failed_runs

        latest = await ExecutionLogStore.list_for_schedule(db, schedule_id, limit=1)
        last = latest[0] if latest else None

        return ScheduleStatistics(
            total_runs=total_runs,
            successful_runs=successful_runs,
            failed_runs=failed_runs,
            success_rate=successful_runs / finished if finished else 0.0,
            average_duration_seconds=(
                float(row.avg_duration) if row.avg_duration is not None else None
            ),
            last_run_at=last.execution_time if last else None,
            last_status=last.status if last else None,
        )

    @staticmethod
    async def recover_interrupted(
        db: AsyncSession,
        finished_at: datetime | None = None,
    ) -> int:
        """Fail executions left RUNNING by a previous process.

        The duration of an interrupted run is measured up to ``finished_at``,
        the instant the interruption was detected.

        Returns:
            Number of executions that were finalized.
        """
        finished_at = finished_at or utc_now()
        result = await db.execute(
            select(ReportExecution).where(ReportExecution.status == ExecutionStatus.RUNNING)
        )
        interrupted = list(result.scalars().all())
        for execution in interrupted:
            execution.fail(INTERRUPTED_MESSAGE, finished_at)
        await db.flush()

        count = len(interrupted)
        if count:
            logger.warning(
                f"Marked {count} interrupted execution(s) as failed",
                extra={"context": {"recovered_executions": count}},
            )
        return count


__all__ = ["INTERRUPTED_MESSAGE", "ExecutionLogStore"]
