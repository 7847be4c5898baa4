"""
Background worker for processing queued jobs.

Usage:
    python -m qcsat.worker

Polls the Redis job queue and runs the registered handlers. For production,
run this as a separate process or through qcsat.worker_service.
"""

import asyncio
import logging

from qcsat.core.config import settings
from qcsat.core.locks import RedisLock
from qcsat.core.redis_client import close_async_redis_client, get_async_redis_client
from qcsat.core.structured_logging import build_log_context, configure_logging
from qcsat.db.session import SessionLocal
from qcsat.jobs.queue import JobQueue
from qcsat.jobs.registry import JOB_HANDLERS, resolve_job_handler
from qcsat.jobs.store import RedisOrderedSetStore

logger = logging.getLogger(__name__)


def bind_session(handler):
    """Adapt a (db, job) handler to the queue's (job) signature."""

    async def run(job) -> None:
        with SessionLocal() as db:
            await handler(db, job)

    return run


def build_job_queue(
    client=None, register_handlers: bool = True, job_types: list[str] | None = None
) -> JobQueue:
    """
    JobQueue over Redis configured from settings.

    Registers handlers for job_types (default WORKER_JOB_TYPES, then every
    known type).
    An unknown type raises ValueError before anything is polled.
    """
    client = client or get_async_redis_client()
    if client is None:
        raise RuntimeError("REDIS_URL not configured")

    queue = JobQueue(
        RedisOrderedSetStore(client),
        RedisLock(client, prefix=""),  # lock keys are "job:{id}"
        poll_interval=settings.WORKER_POLL_INTERVAL,
        batch_size=settings.WORKER_BATCH_SIZE,
        lock_ttl_ms=settings.JOB_LOCK_TTL_MS,
        default_max_attempts=settings.JOB_DEFAULT_MAX_ATTEMPTS,
        dead_letter_unknown_types=settings.DEAD_LETTER_UNKNOWN_JOB_TYPES,
    )
    if register_handlers:
        for job_type in job_types or settings.worker_job_types or JOB_HANDLERS:
            queue.register_handler(job_type, bind_session(resolve_job_handler(job_type)))
    return queue


async def worker_loop(queue: JobQueue | None = None) -> None:
    """Run the queue's poll loop until cancelled."""
    queue = queue or build_job_queue()
    logger.info("Worker handling job types: %s", ", ".join(queue.registered_types))
    try:
        await queue.run()
    finally:
        await close_async_redis_client()


def main() -> None:
    """Entry point for the worker."""
    configure_logging()
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=build_log_context(route="worker", method="background"),
        )
        raise


if __name__ == "__main__":
    main()
