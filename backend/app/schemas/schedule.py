"""Pydantic schemas for scheduled reports.

This module defines request/response schemas for the scheduled report
endpoints. Field types and lengths are checked here; schedule semantics
(cron parsing, recipient addresses, cron/interval consistency) are
validated by the schedule store so they apply to every caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, computed_field
from pydantic.types import PositiveInt

from app.models.enums import ExecutionStatus, ReportType, ScheduleType
from app.schemas.base import (
    BaseResponse,
    BaseSchema,
    DescriptionField,
    NameField,
)
from app.services.schedule.cron import describe_schedule

# =============================================================================
# Filters
# =============================================================================


class ReportFilters(BaseSchema):
    """Ticket filter forwarded to the ticket query service."""

    status: str | None = Field(
        default=None,
        max_length=50,
        description="Only include tickets with this status",
        examples=["open", "closed"],
    )
    category: str | None = Field(
        default=None,
        max_length=100,
        description="Only include tickets in this category",
        examples=["billing"],
    )
    date_range_days: PositiveInt | None = Field(
        default=None,
        le=3660,
        description="Only include tickets created in the last N days",
        examples=[7, 30],
    )


# =============================================================================
# Schedule Statistics Schema
# =============================================================================


class ScheduleStatistics(BaseSchema):
    """Execution statistics for a scheduled report."""

    total_runs: int = Field(
        ...,
        ge=0,
        description="Total number of recorded executions",
        examples=[100],
    )
    successful_runs: int = Field(
        ...,
        ge=0,
        description="Number of successful executions",
        examples=[95],
    )
    failed_runs: int = Field(
        ...,
        ge=0,
        description="Number of failed executions",
        examples=[5],
    )
    success_rate: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Success rate of finished executions (0.0 to 1.0)",
        examples=[0.95],
    )
    average_duration_seconds: float | None = Field(
        default=None,
        ge=0.0,
        description="Average execution duration in seconds",
        examples=[2.4],
    )
    last_run_at: datetime | None = Field(
        default=None,
        description="Start time of the most recent execution",
        examples=["2024-01-16T09:00:00Z"],
    )
    last_status: ExecutionStatus | None = Field(
        default=None,
        description="Status of the most recent execution",
        examples=[ExecutionStatus.SUCCESS],
    )


# =============================================================================
# Request Schemas
# =============================================================================


class ScheduledReportCreate(BaseSchema):
    """Schema for creating a scheduled report."""

    company_id: int = Field(
        ...,
        ge=1,
        description="Owning company identifier",
        examples=[1],
    )
    company_name: str | None = Field(
        default=None,
        max_length=255,
        description="Company display name stored alongside the schedule",
        examples=["Acme Corp"],
    )
    name: str = NameField
    description: str | None = DescriptionField
    report_type: ReportType = Field(
        default=ReportType.DAILY,
        description="Report template to render",
        examples=[ReportType.DAILY, ReportType.WEEKLY],
    )
    schedule_type: ScheduleType = Field(
        ...,
        description="Timing definition kind",
        examples=[ScheduleType.CRON, ScheduleType.INTERVAL],
    )
    cron_expression: str | None = Field(
        default=None,
        max_length=100,
        description=(
            "5-field cron expression (minute hour day-of-month month "
            "day-of-week) or preset name; required for cron schedules"
        ),
        examples=["0 9 * * *", "0 9 * * 1-5", "weekly_monday"],
    )
    interval_minutes: int | None = Field(
        default=None,
        description="Minutes between runs; required for interval schedules",
        examples=[30, 60],
    )
    recipients: list[str] = Field(
        ...,
        description="To addresses (at least one)",
        examples=[["support-leads@example.com"]],
    )
    cc_recipients: list[str] = Field(
        default_factory=list,
        description="Cc addresses",
        examples=[["manager@example.com"]],
    )
    filters: ReportFilters = Field(
        default_factory=ReportFilters,
        description="Ticket filter forwarded to the ticket query service",
    )
    email_subject: str | None = Field(
        default=None,
        max_length=500,
        description="Subject override",
        examples=["Weekly ticket digest"],
    )
    email_body: str | None = Field(
        default=None,
        max_length=10000,
        description="Text placed above the generated report",
    )
    is_active: bool = Field(
        default=True,
        description="Whether the scheduler evaluates this schedule",
    )
    created_by: str | None = Field(
        default=None,
        max_length=255,
        description="Creator identifier",
        examples=["ops@example.com"],
    )


class ScheduledReportUpdate(BaseSchema):
    """Schema for updating a scheduled report.

    All fields are optional to support partial updates. When
    ``schedule_type`` changes, the definition field of the previous kind is
    cleared unless it is also supplied.
    """

    company_name: str | None = Field(default=None, max_length=255)
    name: str | None = Field(
        default=None,
        min_length=1,
        max_length=255,
        description="Display name",
    )
    description: str | None = Field(default=None, max_length=2000)
    report_type: ReportType | None = Field(default=None)
    schedule_type: ScheduleType | None = Field(default=None)
    cron_expression: str | None = Field(default=None, max_length=100)
    interval_minutes: int | None = Field(default=None)
    recipients: list[str] | None = Field(default=None)
    cc_recipients: list[str] | None = Field(default=None)
    filters: ReportFilters | None = Field(default=None)
    email_subject: str | None = Field(default=None, max_length=500)
    email_body: str | None = Field(default=None, max_length=10000)
    is_active: bool | None = Field(
        default=None,
        description="Whether the scheduler evaluates this schedule",
        examples=[True, False],
    )


# =============================================================================
# Response Schemas
# =============================================================================


class ScheduledReportResponse(BaseResponse):
    """Schema for a scheduled report in API responses."""

    company_id: int
    company_name: str | None = None
    name: str
    description: str | None = None
    report_type: ReportType
    schedule_type: ScheduleType
    cron_expression: str | None = None
    interval_minutes: int | None = None
    recipients: list[str]
    cc_recipients: list[str] = Field(default_factory=list)
    filters: dict[str, Any] = Field(default_factory=dict)
    email_subject: str | None = None
    email_body: str | None = None
    is_active: bool
    needs_attention: bool = Field(
        default=False,
        description="Set when no next run time could be computed",
    )
    created_by: str | None = None
    last_run: datetime | None = Field(
        default=None,
        description="Completion time of the most recent run",
    )
    next_run: datetime | None = Field(
        default=None,
        description="Next due time (null while inactive)",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def schedule_description(self) -> str:
        """Human-readable timing summary."""
        definition = (
            self.interval_minutes
            if self.schedule_type == ScheduleType.INTERVAL
            else self.cron_expression
        )
        return describe_schedule(self.schedule_type, definition)


class ScheduledReportDetailResponse(ScheduledReportResponse):
    """Scheduled report with execution statistics."""

    statistics: ScheduleStatistics


__all__ = [
    "ReportFilters",
    "ScheduleStatistics",
    "ScheduledReportCreate",
    "ScheduledReportDetailResponse",
    "ScheduledReportResponse",
    "ScheduledReportUpdate",
]
