"""API v1 routing configuration.

This module defines all v1 API routes.
"""

from fastapi import APIRouter

from app.api.v1 import scheduled_reports

router = APIRouter()

# Domain routers
router.include_router(
    scheduled_reports.router,
    prefix="/scheduled-reports",
    tags=["Scheduled Reports"],
)


@router.get("/status", tags=["Status"])
async def api_status() -> dict[str, str]:
    """API v1 status check."""
    return {"status": "ok", "version": "v1"}
