"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from qcsat.core.config import settings
from qcsat.core.errors import AppError, format_error_response
from qcsat.core.redis_client import (
    close_async_redis_client,
    get_async_redis_client,
    redis_status,
)
from qcsat.core.structured_logging import build_log_context, configure_logging
from qcsat.db.session import engine

logger = logging.getLogger(__name__)

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Q CSAT Integrations API",
    description="Inbound integration events, CSAT materialization and job queue operations",
    version=settings.VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed: %s",
            exc.code,
            extra=build_log_context(route=request.url.path, method=request.method),
        )
    return JSONResponse(status_code=exc.status_code, content=format_error_response(exc))


# ============================================================================
# Lifecycle
# ============================================================================

@app.on_event("startup")
async def _startup() -> None:
    configure_logging()
    # The API only enqueues and inspects jobs; the worker runs the poller.
    from qcsat.worker import build_job_queue

    client = get_async_redis_client()
    app.state.job_queue = build_job_queue(client) if client is not None else None
    if app.state.job_queue is None:
        logger.warning("REDIS_URL not configured - job queue endpoints disabled")


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_async_redis_client()


# ============================================================================
# Routers
# ============================================================================

from qcsat.routers import internal, webhooks  # noqa: E402

app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(internal.router)


@app.get("/health")
async def health():
    """Liveness plus database and Redis round-trips."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        database = "ok"
    except Exception as exc:
        logger.warning("Health check database error: %s", type(exc).__name__)
        database = "error"
    redis = await redis_status()
    degraded = database == "error" or redis == "error"
    return {
        "status": "degraded" if degraded else "ok",
        "database": database,
        "redis": redis,
        "version": settings.VERSION,
    }
