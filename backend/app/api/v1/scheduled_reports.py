"""Scheduled report API router.

REST endpoints for managing scheduled reports, triggering manual runs and
reading execution history. Domain errors raised by the services
(``ValidationError``, ``NotFoundError``, ``ConflictError``) are turned into
HTTP responses by the handlers registered in ``app.main``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, status

from app.api.deps import DBSession, Engine, Pagination
from app.models.enums import ExecutionStatus
from app.schemas.base import ErrorResponse, SuccessResponse
from app.schemas.execution import ReportExecutionResponse, SchedulerStatusResponse
from app.schemas.schedule import (
    ScheduledReportCreate,
    ScheduledReportDetailResponse,
    ScheduledReportResponse,
    ScheduledReportUpdate,
)

router = APIRouter()

NOT_FOUND = {status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}}
CONFLICT = {status.HTTP_409_CONFLICT: {"model": ErrorResponse}}
INVALID = {status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse}}


# =============================================================================
# Collection endpoints
# =============================================================================


@router.get(
    "",
    response_model=list[ScheduledReportResponse],
    summary="List Scheduled Reports",
    description="List scheduled reports with optional company and status filters",
)
async def list_scheduled_reports(
    db: DBSession,
    engine: Engine,
    pagination: Pagination,
    company_id: int | None = None,
    is_active: bool | None = None,
) -> list[ScheduledReportResponse]:
    """List live scheduled reports, newest first."""
    schedules = await engine.store.list(
        db,
        company_id=company_id,
        is_active=is_active,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return [ScheduledReportResponse.model_validate(s) for s in schedules]


@router.post(
    "",
    response_model=ScheduledReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Scheduled Report",
    description="Create a scheduled report; next_run is computed immediately",
    responses=INVALID,
)
async def create_scheduled_report(
    data: ScheduledReportCreate,
    db: DBSession,
    engine: Engine,
) -> ScheduledReportResponse:
    """Create a scheduled report."""
    schedule = await engine.store.create(db, data)
    return ScheduledReportResponse.model_validate(schedule)


@router.get(
    "/executions/recent",
    response_model=list[ReportExecutionResponse],
    summary="Recent Executions",
    description="Recent executions across all schedules, newest first",
)
async def list_recent_executions(
    db: DBSession,
    engine: Engine,
    company_id: int | None = None,
    status_filter: Annotated[ExecutionStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[ReportExecutionResponse]:
    """List recent executions with schedule and company names."""
    return await engine.executions.list_recent(
        db, company_id=company_id, status=status_filter, limit=limit
    )


@router.get(
    "/scheduler/status",
    response_model=SchedulerStatusResponse,
    summary="Scheduler Status",
    description="State of the scheduler loop, worker pool and dispatch queue",
)
async def scheduler_status(engine: Engine) -> SchedulerStatusResponse:
    """Report scheduler loop status."""
    return SchedulerStatusResponse(**engine.status())


# =============================================================================
# Item endpoints
# =============================================================================


@router.get(
    "/{schedule_id}",
    response_model=ScheduledReportDetailResponse,
    summary="Get Scheduled Report",
    description="Get a scheduled report with execution statistics",
    responses=NOT_FOUND,
)
async def get_scheduled_report(
    schedule_id: int,
    db: DBSession,
    engine: Engine,
) -> ScheduledReportDetailResponse:
    """Get a scheduled report."""
    return await engine.store.get_detail(db, schedule_id)


@router.put(
    "/{schedule_id}",
    response_model=ScheduledReportResponse,
    summary="Update Scheduled Report",
    description="Partially update a scheduled report (same validation as create)",
    responses={**NOT_FOUND, **CONFLICT, **INVALID},
)
async def update_scheduled_report(
    schedule_id: int,
    data: ScheduledReportUpdate,
    db: DBSession,
    engine: Engine,
) -> ScheduledReportResponse:
    """Update a scheduled report; rejected while an execution is running."""
    schedule = await engine.store.update(db, schedule_id, data)
    return ScheduledReportResponse.model_validate(schedule)


@router.delete(
    "/{schedule_id}",
    response_model=SuccessResponse,
    summary="Delete Scheduled Report",
    description="Delete a scheduled report; its execution history is kept",
    responses={**NOT_FOUND, **CONFLICT},
)
async def delete_scheduled_report(
    schedule_id: int,
    db: DBSession,
    engine: Engine,
) -> SuccessResponse:
    """Delete a scheduled report; rejected while an execution is running."""
    await engine.store.delete(db, schedule_id)
    return SuccessResponse(message="Scheduled report deleted successfully")


@router.post(
    "/{schedule_id}/toggle",
    response_model=ScheduledReportResponse,
    summary="Toggle Scheduled Report",
    description="Flip is_active; activation recomputes next_run from now",
    responses=NOT_FOUND,
)
async def toggle_scheduled_report(
    schedule_id: int,
    db: DBSession,
    engine: Engine,
) -> ScheduledReportResponse:
    """Pause or resume a scheduled report."""
    schedule = await engine.store.toggle(db, schedule_id)
    return ScheduledReportResponse.model_validate(schedule)


@router.post(
    "/{schedule_id}/execute",
    response_model=SuccessResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run Scheduled Report Now",
    description=(
        "Start a run immediately without waiting for it; poll the execution "
        "history for the outcome"
    ),
    responses=NOT_FOUND,
)
async def execute_scheduled_report(
    schedule_id: int,
    db: DBSession,
    engine: Engine,
) -> SuccessResponse:
    """Trigger a manual run."""
    await engine.manual.trigger(db, schedule_id)
    return SuccessResponse(message="Report execution started")


@router.get(
    "/{schedule_id}/executions",
    response_model=list[ReportExecutionResponse],
    summary="List Executions",
    description="Execution history of a scheduled report, newest first",
    responses=NOT_FOUND,
)
async def list_executions(
    schedule_id: int,
    db: DBSession,
    engine: Engine,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[ReportExecutionResponse]:
    """List executions of one scheduled report."""
    await engine.store.get(db, schedule_id)
    executions = await engine.executions.list_for_schedule(
        db, schedule_id, limit=limit, offset=offset
    )
    return [ReportExecutionResponse.model_validate(e) for e in executions]
