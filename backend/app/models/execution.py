"""Execution log model for scheduled report runs.

Each row records one attempt to generate and deliver a scheduled report.
Rows are created in the RUNNING state when a run starts and finalized
exactly once to SUCCESS or FAILED. The engine never deletes them.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, IntegerIDMixin, UTCDateTime, utc_now
from app.models.enums import ExecutionStatus, TriggerSource

if TYPE_CHECKING:
    from app.models.schedule import ScheduledReport


class ReportExecution(IntegerIDMixin, Base):
    """One execution attempt of a scheduled report.

    Attributes:
        id: Integer primary key (from IntegerIDMixin)
        schedule_id: Schedule that was run
        company_id: Copied from the schedule at start time
        trigger_source: SCHEDULE (timer) or MANUAL (run now)
        execution_time: Instant the run started
        finished_at: Instant the run reached a terminal state
        status: RUNNING, then SUCCESS or FAILED
        tickets_count: Number of tickets in the report (on success)
        recipients_count: Number of To + Cc addresses (on success)
        error_message: Failure cause (on failure)
        duration_seconds: Wall-clock run time
        schedule: Relationship to the parent ScheduledReport
    """

    __tablename__ = "report_executions"
    __table_args__ = (
        Index(
            "ix_report_executions_schedule_time",
            "schedule_id",
            "execution_time",
        ),
    )

    schedule_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("scheduled_reports.id"),
        nullable=False,
    )

    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )

    trigger_source: Mapped[TriggerSource] = mapped_column(
        String(20),
        nullable=False,
        default=TriggerSource.SCHEDULE,
    )

    execution_time: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
    )

    finished_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    status: Mapped[ExecutionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ExecutionStatus.RUNNING,
        index=True,
    )

    tickets_count: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    recipients_count: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    duration_seconds: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )

    schedule: Mapped[ScheduledReport] = relationship(
        "ScheduledReport",
        back_populates="executions",
        lazy="raise",
    )

    def __repr__(self) -> str:
        """Return string representation of the execution."""
        return (
            f"<ReportExecution(id={self.id}, "
            f"schedule_id={self.schedule_id}, "
            f"status={self.status})>"
        )

    @property
    def is_terminal(self) -> bool:
        """Check if execution is in a terminal state."""
        return ExecutionStatus(self.status).is_terminal

    def _finish(self, status: ExecutionStatus, finished_at: datetime) -> None:
        if self.is_terminal:
            raise ValueError(f"Cannot finalize execution in {self.status} state")
        self.status = status
        self.finished_at = finished_at
        self.duration_seconds = max(
            (finished_at - self.execution_time).total_seconds(), 0.0
        )

    def succeed(
        self,
        tickets_count: int,
        recipients_count: int,
        finished_at: datetime | None = None,
    ) -> None:
        """Mark execution as successful.

        Args:
            tickets_count: Tickets included in the delivered report
            recipients_count: Number of To and Cc addresses
            finished_at: Completion instant (defaults to now)

        Raises:
            ValueError: If execution is already terminal.
        """
        self._finish(ExecutionStatus.SUCCESS, finished_at or utc_now())
        self.tickets_count = tickets_count
        self.recipients_count = recipients_count

    def fail(self, error_message: str, finished_at: datetime | None = None) -> None:
        """Mark execution as failed.

        Args:
            error_message: Failure cause recorded for operators
            finished_at: Completion instant (defaults to now)

        Raises:
            ValueError: If execution is already terminal.
        """
        self._finish(ExecutionStatus.FAILED, finished_at or utc_now())
        self.error_message = error_message


__all__ = ["ReportExecution"]
