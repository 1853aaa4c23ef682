"""Pydantic schemas for report executions and scheduler status."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from app.models.enums import ExecutionStatus, TriggerSource
from app.schemas.base import BaseSchema


class ReportExecutionResponse(BaseSchema):
    """One execution attempt of a scheduled report.

    ``schedule_name`` and ``company_name`` are filled by cross-schedule
    listings, which join the schedule table.
    """

    id: int
    schedule_id: int
    company_id: int
    trigger_source: TriggerSource = Field(
        default=TriggerSource.SCHEDULE,
        description="What started the execution",
    )
    execution_time: datetime = Field(
        ...,
        description="Instant the run started",
        examples=["2024-01-16T09:00:00Z"],
    )
    finished_at: datetime | None = None
    status: ExecutionStatus = Field(
        ...,
        description="running, success or failed",
        examples=[ExecutionStatus.SUCCESS],
    )
    tickets_count: int | None = None
    recipients_count: int | None = None
    error_message: str | None = None
    duration_seconds: float | None = None
    schedule_name: str | None = None
    company_name: str | None = None


class SchedulerStatusResponse(BaseSchema):
    """Scheduler loop state for health checks."""

    enabled: bool = Field(..., description="Whether the timer is configured to run")
    running: bool = Field(..., description="Whether the timer and workers are started")
    state: str = Field(..., description="idle, scanning or dispatching", examples=["idle"])
    workers: int = Field(..., ge=0, description="Size of the worker pool")
    queue_depth: int = Field(..., ge=0, description="Dispatched runs waiting for a worker")
    queue_capacity: int = Field(..., ge=0, description="Maximum queued runs")
    active_locks: int = Field(..., ge=0, description="Schedules currently executing or awaited")
    pending_manual_runs: int = Field(..., ge=0, description="Manual runs not yet finished")
    last_tick_at: datetime | None = None
    next_tick_at: datetime | None = None


__all__ = [
    "ReportExecutionResponse",
    "SchedulerStatusResponse",
]
