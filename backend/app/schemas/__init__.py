"""Pydantic schemas for request/response validation.

This package contains all Pydantic models for API validation.
Exports all schemas for convenient importing.
"""

from app.schemas.base import (
    BaseResponse,
    BaseSchema,
    ErrorResponse,
    SuccessResponse,
)
from app.schemas.execution import (
    ReportExecutionResponse,
    SchedulerStatusResponse,
)
from app.schemas.schedule import (
    ReportFilters,
    ScheduledReportCreate,
    ScheduledReportDetailResponse,
    ScheduledReportResponse,
    ScheduledReportUpdate,
    ScheduleStatistics,
)

__all__ = [
    "BaseResponse",
    "BaseSchema",
    "ErrorResponse",
    "ReportExecutionResponse",
    "ReportFilters",
    "ScheduleStatistics",
    "ScheduledReportCreate",
    "ScheduledReportDetailResponse",
    "ScheduledReportResponse",
    "ScheduledReportUpdate",
    "SchedulerStatusResponse",
    "SuccessResponse",
]
