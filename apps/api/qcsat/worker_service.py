"""
HTTP service wrapper for the background worker.

Container platforms that expect an HTTP port run this instead of
``python -m qcsat.worker``: the poller runs as a background task and
``/health`` reports whether it is alive along with queue depth.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from qcsat.core.redis_client import close_async_redis_client, redis_status
from qcsat.core.structured_logging import configure_logging
from qcsat.worker import build_job_queue

logger = logging.getLogger(__name__)

app = FastAPI(title="Q CSAT Worker")
app.state.job_queue = None


@app.get("/health")
async def health():
    """503 once the poller has stopped, so the platform restarts the container."""
    queue = app.state.job_queue
    if queue is None or not queue.is_running:
        return JSONResponse(status_code=503, content={"status": "stopped"})

    body = {"status": "ok", "redis": await redis_status(), "job_types": queue.registered_types}
    if body["redis"] == "ok":
        stats = await queue.get_queue_stats()
        body.update(pending=stats.pending, dead_letter=stats.dead_letter)
    return body


@app.on_event("startup")
async def _startup() -> None:
    configure_logging()
    queue = build_job_queue()
    logger.info("Worker handling job types: %s", ", ".join(queue.registered_types))
    queue.start()
    app.state.job_queue = queue


@app.on_event("shutdown")
async def _shutdown() -> None:
    queue = app.state.job_queue
    if queue is not None:
        await queue.stop()
        app.state.job_queue = None
    await close_async_redis_client()


def main() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")
    # nosec B104 - container platforms require binding to all interfaces.
    uvicorn.run("qcsat.worker_service:app", host=host, port=port)


if __name__ == "__main__":
    main()
