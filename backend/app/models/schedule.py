"""Scheduled report model.

This module defines the ScheduledReport model: a persisted definition of
when a ticket report is generated and to whom it is emailed.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, IntegerIDMixin, SoftDeleteMixin, TimestampMixin, UTCDateTime
from app.models.enums import ReportType, ScheduleType

if TYPE_CHECKING:
    from app.models.execution import ReportExecution

# Use JSONB for PostgreSQL, JSON for other databases (like SQLite for testing)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class ScheduledReport(IntegerIDMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Scheduled report definition.

    Attributes:
        id: Integer primary key (from IntegerIDMixin)
        company_id: Owning company (managed by the company service)
        company_name: Denormalized company display name
        name: Display name of the schedule
        description: Optional description
        report_type: Report template (ReportType value)
        schedule_type: CRON or INTERVAL
        cron_expression: 5-field cron string or preset name (CRON only)
        interval_minutes: Minutes between runs (INTERVAL only)
        recipients: Ordered list of To addresses (non-empty)
        cc_recipients: Optional Cc addresses
        filters: Ticket filter forwarded to the ticket query service
        email_subject: Optional subject override
        email_body: Optional body text prepended to the report
        is_active: Whether the scheduler loop evaluates this schedule
        needs_attention: Set when next_run could not be computed
        last_run: Completion time of the most recent run
        next_run: Next due instant (None while inactive)
        created_by: Free-form creator identifier
        created_at / updated_at: From TimestampMixin
        deleted_at: From SoftDeleteMixin

    Schedule definition by type:

        CRON:
            {"cron_expression": "0 9 * * *", "interval_minutes": null}
            {"cron_expression": "weekly_monday", "interval_minutes": null}

        INTERVAL:
            {"cron_expression": null, "interval_minutes": 30}

    ``last_run`` and ``next_run`` are maintained by the report engine only.
    """

    __tablename__ = "scheduled_reports"
    __table_args__ = (
        Index("ix_scheduled_reports_active_next_run", "is_active", "next_run"),
    )

    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )

    company_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    report_type: Mapped[ReportType] = mapped_column(
        String(50),
        nullable=False,
        default=ReportType.DAILY,
    )

    # Timing definition
    schedule_type: Mapped[ScheduleType] = mapped_column(
        String(50),
        nullable=False,
    )

    cron_expression: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    interval_minutes: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    # Delivery
    recipients: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    cc_recipients: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        server_default="[]",
    )

    filters: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        server_default="{}",
    )

    email_subject: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    email_body: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Status
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )

    needs_attention: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    last_run: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    next_run: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    created_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    executions: Mapped[list[ReportExecution]] = relationship(
        "ReportExecution",
        back_populates="schedule",
        order_by="ReportExecution.execution_time.desc()",
        lazy="raise",
    )

    def __repr__(self) -> str:
        """Return string representation of the schedule."""
        return (
            f"<ScheduledReport(id={self.id}, name='{self.name}', "
            f"type={self.schedule_type}, active={self.is_active})>"
        )

    @property
    def definition(self) -> str | int | None:
        """The timing definition matching ``schedule_type``."""
        if self.schedule_type == ScheduleType.INTERVAL:
            return self.interval_minutes
        return self.cron_expression

    def is_due(self, now: datetime) -> bool:
        """Check whether the scheduler loop should dispatch this schedule."""
        return (
            self.is_active
            and not self.is_deleted
            and not self.needs_attention
            and self.next_run is not None
            and self.next_run <= now
        )


__all__ = ["ScheduledReport"]
