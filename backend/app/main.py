"""FastAPI application entry point.

This module defines the main FastAPI application with CORS middleware,
lifespan management, exception handlers and API routing configuration.

Logging:
    Initializes structured logging on application startup.
    All application events are logged with appropriate context.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core.config import settings
from app.core.exceptions import AppError, ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger, setup_logging
from app.db.session import async_session, engine
from app.services.schedule.engine import ReportEngine

# Initialize logging system
setup_logging(
    log_level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    service_name=settings.PROJECT_NAME,
    enable_json=settings.LOG_JSON_FORMAT,
)

# Get application logger
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan context manager.

    Starts the report engine (startup recovery, scheduler loop and worker
    pool) on startup and stops it on shutdown.
    """
    # Startup
    logger.info(
        f"Starting {settings.PROJECT_NAME}",
        extra={
            "context": {
                "action": "application_startup",
                "version": settings.VERSION,
                "debug": settings.DEBUG,
                "log_level": settings.LOG_LEVEL,
                "scheduler_enabled": settings.SCHEDULER_ENABLED,
            }
        },
    )

    report_engine: ReportEngine | None = None
    if settings.DATABASE_URL is None:
        logger.warning(
            "DATABASE_URL is not configured; report engine not started",
            extra={"context": {"action": "application_startup"}},
        )
    else:
        report_engine = ReportEngine.from_settings(async_session)
        await report_engine.start()
    app.state.report_engine = report_engine

    logger.info(
        "Application startup completed",
        extra={"context": {"action": "application_startup", "status": "success"}},
    )

    yield

    # Shutdown
    logger.info(
        f"Shutting down {settings.PROJECT_NAME}",
        extra={"context": {"action": "application_shutdown"}},
    )

    if report_engine is not None:
        await report_engine.shutdown()
    await engine.dispose()

    logger.info(
        "Application shutdown completed",
        extra={"context": {"action": "application_shutdown", "status": "success"}},
    )


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Scheduled ticket report generation and email delivery",
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


# =============================================================================
# Exception handlers
# =============================================================================


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Map rejected schedule definitions to 422."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Map unknown resources to 404."""
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc)},
    )


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    """Map operations blocked by a running execution to 409."""
    logger.info(
        str(exc),
        extra={"context": {"path": request.url.path, "operation": exc.operation}},
    )
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc)},
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Fallback for other application errors."""
    logger.error(
        f"Unhandled application error: {exc}",
        extra={"context": {"path": request.url.path, "error_type": type(exc).__name__}},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc)},
    )


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status indicating the service is running.
    """
    return {"status": "healthy"}


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint.

    Returns basic API information.
    """
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs": "/docs",
    }
