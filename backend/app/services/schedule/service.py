"""Schedule store for scheduled reports.

This service owns the lifecycle of schedule definitions: validation,
CRUD, activation toggling and the ``last_run``/``next_run`` bookkeeping
written by the execution runner. Clients never set run times directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictError,
    InvalidScheduleError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from app.models.base import utc_now
from app.models.enums import ScheduleType
from app.models.schedule import ScheduledReport
from app.schemas.schedule import (
    ScheduledReportCreate,
    ScheduledReportDetailResponse,
    ScheduledReportResponse,
    ScheduledReportUpdate,
)
from app.services.schedule.cron import (
    next_run,
    validate_cron_expression,
    validate_interval_minutes,
)
from app.services.schedule.execution_log import ExecutionLogStore
from app.services.schedule.locks import ScheduleLockRegistry
from app.utils.email import validate_recipients

logger = logging.getLogger(__name__)

# Fields that cannot be cleared by an explicit null in an update
_REQUIRED_FIELDS = frozenset(
    {"name", "report_type", "schedule_type", "recipients", "is_active"}
)


class ScheduleStore:
    """Service for managing scheduled report definitions.

    Attributes:
        locks: Lock registry consulted before update/delete
        clock: Source of "now" (aware UTC)
        lookahead_days: Cron search bound passed to the evaluator
    """

    def __init__(
        self,
        locks: ScheduleLockRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
        lookahead_days: int | None = None,
    ) -> None:
        self.locks = locks if locks is not None else ScheduleLockRegistry()
        self.clock = clock
        self.lookahead_days = lookahead_days

    # ==========================================================================
    # CRUD Operations
    # ==========================================================================

    async def create(
        self,
        db: AsyncSession,
        data: ScheduledReportCreate,
    ) -> ScheduledReport:
        """Validate and persist a new schedule.

        ``next_run`` is computed from the current instant before persisting;
        inactive schedules are stored with ``next_run`` unset.

        Raises:
            ValidationError: Invalid recipients or timing definition.
        """
        recipients = validate_recipients(data.recipients)
        cc_recipients = validate_recipients(
            data.cc_recipients, field="cc_recipients", required=False
        )
        schedule_type = ScheduleType(data.schedule_type)
        cron_expression, interval_minutes = self._validate_definition(
            schedule_type, data.cron_expression, data.interval_minutes
        )

        now = self.clock()
        first_run = self._compute_next_run(
            schedule_type, cron_expression or interval_minutes, now
        )

        schedule = ScheduledReport(
            company_id=data.company_id,
            company_name=data.company_name,
            name=data.name,
            description=data.description,
            report_type=data.report_type,
            schedule_type=schedule_type.value,
            cron_expression=cron_expression,
            interval_minutes=interval_minutes,
            recipients=recipients,
            cc_recipients=cc_recipients,
            filters=data.filters.model_dump(exclude_none=True),
            email_subject=data.email_subject,
            email_body=data.email_body,
            is_active=data.is_active,
            needs_attention=False,
            next_run=first_run if data.is_active else None,
            created_by=data.created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(schedule)
        await db.flush()

        logger.info(
            f"Created scheduled report {schedule.id} for company {schedule.company_id}",
            extra={
                "context": {
                    "schedule_id": str(schedule.id),
                    "schedule_type": str(schedule_type),
                    "next_run": schedule.next_run.isoformat() if schedule.next_run else None,
                }
            },
        )
        return schedule

    async def get(
        self,
        db: AsyncSession,
        schedule_id: int,
    ) -> ScheduledReport:
        """Get a live schedule by ID.

        Raises:
            NotFoundError: Unknown or deleted schedule.
        """
        return await self._get_schedule_by_id(db, schedule_id)

    async def get_detail(
        self,
        db: AsyncSession,
        schedule_id: int,
    ) -> ScheduledReportDetailResponse:
        """Get a schedule together with its execution statistics."""
        schedule = await self._get_schedule_by_id(db, schedule_id)
        statistics = await ExecutionLogStore.statistics(db, schedule_id)

        return ScheduledReportDetailResponse(
            **ScheduledReportResponse.model_validate(schedule).model_dump(
                exclude={"schedule_description"}
            ),
            statistics=statistics,
        )

    async def list(
        self,
        db: AsyncSession,
        company_id: int | None = None,
        is_active: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ScheduledReport]:
        """List live schedules, newest first."""
        query = select(ScheduledReport).where(ScheduledReport.deleted_at.is_(None))

        if company_id is not None:
            query = query.where(ScheduledReport.company_id == company_id)
        if is_active is not None:
            query = query.where(ScheduledReport.is_active == is_active)

        query = query.order_by(
            ScheduledReport.created_at.desc(), ScheduledReport.id
        ).offset(offset).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def update(
        self,
        db: AsyncSession,
        schedule_id: int,
        data: ScheduledReportUpdate,
    ) -> ScheduledReport:
        """Apply a partial update with the same validation as create.

        A changed timing definition, or activation of an inactive schedule,
        recomputes ``next_run`` from the current instant.

        Raises:
            NotFoundError: Unknown or deleted schedule.
            ConflictError: An execution of the schedule is in flight.
            ValidationError: Invalid recipients or timing definition.
        """
        schedule = await self._get_schedule_by_id(db, schedule_id)
        if await self._is_busy(db, schedule_id):
            raise ConflictError(schedule_id, "update")

        fields: dict[str, Any] = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if not (value is None and key in _REQUIRED_FIELDS)
        }

        old_type = ScheduleType(schedule.schedule_type)
        schedule_type = ScheduleType(fields.pop("schedule_type", old_type))
        type_changed = schedule_type is not old_type

        cron_expression = fields.pop(
            "cron_expression", None if type_changed else schedule.cron_expression
        )
        interval_minutes = fields.pop(
            "interval_minutes", None if type_changed else schedule.interval_minutes
        )
        cron_expression, interval_minutes = self._validate_definition(
            schedule_type, cron_expression, interval_minutes
        )
        timing_changed = (
            type_changed
            or cron_expression != schedule.cron_expression
            or interval_minutes != schedule.interval_minutes
        )

        if "recipients" in fields:
            fields["recipients"] = validate_recipients(fields["recipients"])
        if "cc_recipients" in fields:
            fields["cc_recipients"] = validate_recipients(
                fields["cc_recipients"], field="cc_recipients", required=False
            )
        if "filters" in fields:
            fields["filters"] = {
                key: value
                for key, value in (fields["filters"] or {}).items()
                if value is not None
            }

        was_active = schedule.is_active
        is_active = fields.pop("is_active", was_active)

        now = self.clock()
        if timing_changed or (is_active and (not was_active or schedule.needs_attention)):
            upcoming = self._compute_next_run(
                schedule_type, cron_expression or interval_minutes, now
            )
            schedule.next_run = upcoming if is_active else None
            schedule.needs_attention = False
        elif not is_active:
            schedule.next_run = None

        for key, value in fields.items():
            setattr(schedule, key, value)
        schedule.schedule_type = schedule_type.value
        schedule.cron_expression = cron_expression
        schedule.interval_minutes = interval_minutes
        schedule.is_active = is_active
        schedule.updated_at = now

        await db.flush()

        logger.info(
            f"Updated scheduled report {schedule_id}",
            extra={
                "context": {
                    "schedule_id": str(schedule_id),
                    "timing_changed": timing_changed,
                    "is_active": is_active,
                }
            },
        )
        return schedule

    async def delete(
        self,
        db: AsyncSession,
        schedule_id: int,
    ) -> None:
        """Soft delete a schedule, keeping its execution history.

        Raises:
            NotFoundError: Unknown or deleted schedule.
            ConflictError: An execution of the schedule is in flight.
        """
        schedule = await self._get_schedule_by_id(db, schedule_id)
        if await self._is_busy(db, schedule_id):
            raise ConflictError(schedule_id, "delete")

        now = self.clock()
        schedule.soft_delete(now)
        schedule.next_run = None
        schedule.updated_at = now
        await db.flush()

        logger.info(
            f"Deleted scheduled report {schedule_id}",
            extra={"context": {"schedule_id": str(schedule_id)}},
        )

    # ==========================================================================
    # Schedule Control
    # ==========================================================================

    async def toggle(
        self,
        db: AsyncSession,
        schedule_id: int,
    ) -> ScheduledReport:
        """Flip ``is_active``.

        Activation recomputes ``next_run`` from the current instant, so runs
        missed while paused are not replayed. Deactivation clears it; an
        execution already in flight still completes.
        """
        schedule = await self._get_schedule_by_id(db, schedule_id)
        now = self.clock()

        if schedule.is_active:
            schedule.is_active = False
            schedule.next_run = None
        else:
            schedule.next_run = self._compute_next_run(
                schedule.schedule_type, schedule.definition, now
            )
            schedule.is_active = True
        schedule.needs_attention = False
        schedule.updated_at = now
        await db.flush()

        logger.info(
            f"Scheduled report {schedule_id} "
            f"{'activated' if schedule.is_active else 'deactivated'}",
            extra={
                "context": {
                    "schedule_id": str(schedule_id),
                    "is_active": schedule.is_active,
                    "next_run": schedule.next_run.isoformat() if schedule.next_run else None,
                }
            },
        )
        return schedule

    async def set_run_times(
        self,
        db: AsyncSession,
        schedule_id: int,
        last_run: datetime,
        next_run_at: datetime | None,
        needs_attention: bool = False,
    ) -> ScheduledReport:
        """Persist run bookkeeping for a schedule.

        Deleted schedules are still updated so the history stays coherent.
        """
        schedule = await self._get_schedule_by_id(db, schedule_id, include_deleted=True)
        schedule.last_run = last_run
        schedule.next_run = next_run_at
        schedule.needs_attention = needs_attention
        await db.flush()
        return schedule

    async def complete_run(
        self,
        db: AsyncSession,
        schedule_id: int,
        completed_at: datetime,
    ) -> ScheduledReport:
        """Record a finished run and advance ``next_run``.

        The next slot is computed after ``max(completed_at, previous next_run)``
        so it is always later than the slot the run consumed. ``next_run`` is
        only kept for schedules that are still active; when no slot can be
        found the schedule is flagged for operator attention and its
        ``next_run`` is left unchanged.
        """
        schedule = await self._get_schedule_by_id(db, schedule_id, include_deleted=True)

        if not schedule.is_active or schedule.is_deleted:
            return await self.set_run_times(db, schedule_id, completed_at, None)

        reference = completed_at
        if schedule.next_run is not None and schedule.next_run > reference:
            reference = schedule.next_run

        try:
            upcoming = next_run(
                schedule.schedule_type,
                schedule.definition,
                reference,
                self.lookahead_days,
            )
        except (SchedulingError, InvalidScheduleError):
            logger.error(
                f"Scheduled report {schedule_id} has no upcoming run time; "
                "flagged for operator attention",
                extra={
                    "context": {
                        "schedule_id": str(schedule_id),
                        "cron_expression": schedule.cron_expression,
                    }
                },
            )
            return await self.set_run_times(
                db, schedule_id, completed_at, schedule.next_run, needs_attention=True
            )

        return await self.set_run_times(db, schedule_id, completed_at, upcoming)

    async def list_due(
        self,
        db: AsyncSession,
        now: datetime,
        limit: int | None = None,
    ) -> list[ScheduledReport]:
        """List active schedules whose ``next_run`` is at or before ``now``."""
        query = (
            select(ScheduledReport)
            .where(ScheduledReport.deleted_at.is_(None))
            .where(ScheduledReport.is_active.is_(True))
            .where(ScheduledReport.needs_attention.is_(False))
            .where(ScheduledReport.next_run.is_not(None))
            .where(ScheduledReport.next_run <= now)
            .order_by(ScheduledReport.next_run)
        )
        if limit is not None:
            query = query.limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    async def _get_schedule_by_id(
        self,
        db: AsyncSession,
        schedule_id: int,
        include_deleted: bool = False,
    ) -> ScheduledReport:
        query = select(ScheduledReport).where(ScheduledReport.id == schedule_id)
        if not include_deleted:
            query = query.where(ScheduledReport.deleted_at.is_(None))

        result = await db.execute(query)
        schedule = result.scalar_one_or_none()

        if schedule is None:
            raise NotFoundError("scheduled_report", schedule_id)
        return schedule

    async def _is_busy(self, db: AsyncSession, schedule_id: int) -> bool:
        """Check the lock registry and the execution log for an in-flight run."""
        if self.locks.is_locked(schedule_id):
            return True
        return await ExecutionLogStore.has_running(db, schedule_id)

    @staticmethod
    def _validate_definition(
        schedule_type: ScheduleType,
        cron_expression: str | None,
        interval_minutes: int | None,
    ) -> tuple[str | None, int | None]:
        """Check that exactly the field matching ``schedule_type`` is set.

        Returns:
            The validated ``(cron_expression, interval_minutes)`` pair.

        Raises:
            ValidationError: Missing, conflicting or malformed definition.
        """
        if schedule_type is ScheduleType.CRON:
            if interval_minutes is not None:
                raise ValidationError(
                    "interval_minutes must not be set for cron schedules",
                    field="interval_minutes",
                )
            if not cron_expression:
                raise ValidationError(
                    "cron_expression is required for cron schedules",
                    field="cron_expression",
                )
            return validate_cron_expression(cron_expression), None

        if cron_expression is not None:
            raise ValidationError(
                "cron_expression must not be set for interval schedules",
                field="cron_expression",
            )
        if interval_minutes is None:
            raise ValidationError(
                "interval_minutes is required for interval schedules",
                field="interval_minutes",
            )
        return None, validate_interval_minutes(interval_minutes)

    def _compute_next_run(
        self,
        schedule_type: ScheduleType | str,
        definition: str | int | None,
        after: datetime,
    ) -> datetime:
        """Next run for a definition being saved; no match is a validation error."""
        try:
            return next_run(schedule_type, definition, after, self.lookahead_days)
        except SchedulingError as exc:
            raise ValidationError(str(exc), field="cron_expression") from exc


__all__ = ["ScheduleStore"]
