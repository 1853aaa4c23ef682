"""SQLAlchemy models.

This package contains all database models.
"""

from app.models.base import (
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    UTCDateTime,
    IntegerIDMixin,
)
from app.models.enums import ExecutionStatus, ReportType, ScheduleType, TriggerSource
from app.models.execution import ReportExecution
from app.models.schedule import ScheduledReport

__all__ = [
    # Base classes
    "Base",
    "UTCDateTime",
    "IntegerIDMixin",
    "TimestampMixin",
    "SoftDeleteMixin",
    # Enums
    "ExecutionStatus",
    "ReportType",
    "ScheduleType",
    "TriggerSource",
    # Models
    "ReportExecution",
    "ScheduledReport",
]
