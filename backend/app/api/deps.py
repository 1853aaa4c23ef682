"""API dependencies.

Common dependencies for API routes: database sessions, pagination and
access to the report engine created by the application lifespan.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.services.schedule.engine import ReportEngine

# =============================================================================
# Database Session Dependency
# =============================================================================

DBSession = Annotated[AsyncSession, Depends(get_db)]
"""Type alias for database session dependency injection.

Usage:
    @router.get("/items")
    async def get_items(db: DBSession):
        result = await db.execute(select(Item))
        return result.scalars().all()
"""


# =============================================================================
# Pagination Dependencies
# =============================================================================


class PaginationParams(BaseModel):
    """Pagination parameters for list endpoints.

    Attributes:
        limit: Maximum number of records to return.
        offset: Number of records to skip.
    """

    limit: int = Field(default=100, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


def get_pagination_params(
    limit: Annotated[
        int, Query(ge=1, le=500, description="Maximum number of records to return")
    ] = 100,
    offset: Annotated[int, Query(ge=0, description="Number of records to skip")] = 0,
) -> PaginationParams:
    """Get pagination parameters from query string."""
    return PaginationParams(limit=limit, offset=offset)


Pagination = Annotated[PaginationParams, Depends(get_pagination_params)]
"""Type alias for pagination dependency injection.

Usage:
    @router.get("/items")
    async def list_items(pagination: Pagination):
        return await service.list(limit=pagination.limit, offset=pagination.offset)
"""


# =============================================================================
# Report Engine Dependency
# =============================================================================


def get_report_engine(request: Request) -> ReportEngine:
    """Return the report engine stored on the application state.

    Raises:
        HTTPException: 503 if the engine has not been started.
    """
    engine = getattr(request.app.state, "report_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Report engine is not available",
        )
    return engine


Engine = Annotated[ReportEngine, Depends(get_report_engine)]
"""Type alias for report engine dependency injection."""


__all__ = [
    "DBSession",
    "Engine",
    "Pagination",
    "PaginationParams",
    "get_db",
    "get_pagination_params",
    "get_report_engine",
]
