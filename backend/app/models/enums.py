"""Domain enum definitions for the report scheduler.

This module defines all enum types used across the application for
type-safe representation of domain-specific values.
"""

from enum import Enum


class ScheduleType(str, Enum):
    """How a scheduled report computes its next run time.

    CRON schedules follow a 5-field cron expression (or a named preset);
    INTERVAL schedules fire a fixed number of minutes after the previous run.
    """

    CRON = "cron"
    INTERVAL = "interval"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


class ReportType(str, Enum):
    """Report templates available to scheduled reports."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"

    @property
    def title(self) -> str:
        """Human-readable report title used in subjects and headings."""
        return _REPORT_TITLES[self]

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


_REPORT_TITLES = {
    ReportType.DAILY: "Daily Summary",
    ReportType.WEEKLY: "Weekly Report",
    ReportType.MONTHLY: "Monthly Analysis",
    ReportType.CUSTOM: "Custom Export",
}


class ExecutionStatus(str, Enum):
    """Report execution state.

    RUNNING is the only non-terminal state; SUCCESS and FAILED are final.
    """

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check whether no further transitions are allowed."""
        return self is not ExecutionStatus.RUNNING

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


class TriggerSource(str, Enum):
    """What started an execution."""

    SCHEDULE = "schedule"
    MANUAL = "manual"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


__all__ = [
    "ExecutionStatus",
    "ReportType",
    "ScheduleType",
    "TriggerSource",
]
