"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from logbook.core.config import settings
from logbook.core.database import engine, get_db_session, init_models
from logbook.core.logging import setup_logging
from logbook.services.task_queue import connect_transcription_queue

# Initialize logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events.

    Handles startup and shutdown tasks:
    - Database connection verification (and table creation in development)
    - Transcription queue connection (absent or unreachable = inline mode)
    - MinIO bucket bootstrap
    - Queue and database cleanup on shutdown
    """
    # Startup
    logger.info(
        "Starting Clinical Logbook API",
        extra={
            "version": settings.APP_VERSION,
            "env": settings.APP_ENV,
            "debug": settings.APP_DEBUG,
        },
    )

    # Verify database connection
    try:
        async with get_db_session() as db:
            await db.execute(text("SELECT 1"))
        logger.info("Database connection verified")
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        raise

    if settings.DB_CREATE_TABLES:
        await init_models()
        logger.info("Database tables ensured")

    # Never fatal: without a queue every transcription runs inline
    app.state.transcription_queue = await connect_transcription_queue(
        settings.ARQ_REDIS_URL,
        settings.ARQ_QUEUE_NAME,
        conn_retries=settings.ARQ_CONN_RETRIES,
    )

    # Initialize MinIO buckets (if MinIO service is available)
    try:
        from logbook.services.storage import get_minio_service

        minio_service = get_minio_service()
        await minio_service.ensure_buckets_exist()
        logger.info("MinIO buckets verified")
    except Exception as e:
        logger.warning(f"MinIO initialization skipped: {e}")

    logger.info(
        "Application startup complete",
        extra={"transcription_mode": "queued" if app.state.transcription_queue else "inline"},
    )

    yield

    # Shutdown
    logger.info("Shutting down Clinical Logbook API")

    queue = app.state.transcription_queue
    if queue is not None:
        try:
            await queue.close()
        except Exception as e:
            logger.error(f"Error closing transcription queue: {e}")
        app.state.transcription_queue = None

    # Close database connections
    try:
        await engine.dispose()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")

    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Clinical logbook backend: audio recordings, transcription and AI post-processing",
    docs_url="/api/docs" if settings.APP_DEBUG else None,
    redoc_url="/api/redoc" if settings.APP_DEBUG else None,
    openapi_url="/api/openapi.json" if settings.APP_DEBUG else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check() -> JSONResponse:
    """Health check endpoint for load balancers and monitoring."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.APP_ENV,
        },
    )


# Readiness check endpoint
@app.get("/ready", tags=["Health"])
async def readiness_check() -> JSONResponse:
    """Readiness check endpoint - database must answer; the queue only degrades."""
    queue = getattr(app.state, "transcription_queue", None)
    checks = {
        "database": "unknown",
        "transcription_queue": "disabled" if queue is None else "unknown",
        "transcription_mode": "inline" if queue is None else "queued",
    }

    # Check database connection
    try:
        async with get_db_session() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "error"
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "service": settings.APP_NAME,
                "checks": checks,
            },
        )

    if queue is not None:
        try:
            checks["transcription_queue"] = "ok" if await queue.ping() else "error"
        except Exception as e:
            logger.warning(f"Transcription queue health check failed: {e}")
            checks["transcription_queue"] = "error"

    # Storage outages degrade uploads but do not take the API out of rotation
    try:
        from logbook.services.storage import get_minio_service

        checks["storage"] = "ok" if await get_minio_service().ping() else "missing_bucket"
    except Exception as e:
        logger.warning(f"Storage health check failed: {e}")
        checks["storage"] = "error"

    return JSONResponse(
        status_code=200,
        content={
            "status": "ready",
            "service": settings.APP_NAME,
            "checks": checks,
        },
    )


# Root endpoint
@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
    }


# Include API routers
from logbook.api.v1 import api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")
