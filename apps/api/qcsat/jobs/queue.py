"""
Retryable background job queue over an ordered-set store.

Pending jobs live in a sorted set scored by their scheduled time (ms since
epoch). Workers poll for due jobs, take a per-job lock, run the registered
handler and either remove the job, reschedule it with exponential backoff,
or move it to the dead-letter set once attempts are exhausted.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
import time
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError

from qcsat.core.structured_logging import build_log_context
from qcsat.db.enums import DeadLetterReason
from qcsat.jobs.store import DistributedLock, OrderedSetStore
from qcsat.schemas.job import Job, QueueStats

logger = logging.getLogger(__name__)

PENDING_KEY = "queue:jobs"
DEAD_LETTER_KEY = "dead:jobs"
LOCK_KEY_PREFIX = "job:"

JobHandler = Callable[[Job], Awaitable[None]]


def _type_name(job_type) -> str:
    return job_type.value if isinstance(job_type, Enum) else str(job_type)


def backoff_delay_ms(attempts: int) -> int:
    """Retry delay after the given number of failed attempts: 2^attempts seconds."""
    return (2**attempts) * 1000


class JobQueue:
    """
    Explicitly constructed job queue with a start/stop lifecycle.

    Several processes may poll the same store; they coordinate only through
    the per-job lock, so handlers must tolerate at-least-once execution.
    """

    def __init__(
        self,
        store: OrderedSetStore,
        lock: DistributedLock,
        *,
        poll_interval: float = 1.0,
        batch_size: int = 10,
        lock_ttl_ms: int = 30000,
        default_max_attempts: int = 3,
        dead_letter_unknown_types: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.lock = lock
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.lock_ttl_ms = lock_ttl_ms
        self.default_max_attempts = default_max_attempts
        self.dead_letter_unknown_types = dead_letter_unknown_types
        self._clock = clock
        self._handlers: dict[str, JobHandler] = {}
        self._task: asyncio.Task | None = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # =========================================================================
    # Producer side
    # =========================================================================

    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        self._handlers[_type_name(job_type)] = handler

    @property
    def registered_types(self) -> list[str]:
        return sorted(self._handlers)

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        *,
        delay_ms: int = 0,
        max_attempts: int | None = None,
    ) -> str:
        """Add a job scheduled delay_ms from now. Returns the job id."""
        job_type = _type_name(job_type)
        now_ms = self._now_ms()
        job = Job(
            id=f"{job_type}:{now_ms}:{secrets.token_hex(4)}",
            type=job_type,
            payload=payload,
            attempts=0,
            max_attempts=self.default_max_attempts if max_attempts is None else max_attempts,
            created_at=now_ms,
            scheduled_at=now_ms + max(delay_ms, 0),
        )
        await self.store.add_scored(PENDING_KEY, job.scheduled_at, job.model_dump_json())
        logger.info(
            "Job enqueued",
            extra=build_log_context(job_id=job.id, job_type=job_type, delay_ms=delay_ms),
        )
        return job.id

    # =========================================================================
    # Consumer side
    # =========================================================================

    async def poll_once(self) -> int:
        """Process up to batch_size due jobs. Returns how many were picked up."""
        members = await self.store.range_by_score(
            PENDING_KEY, 0, self._now_ms(), self.batch_size
        )
        for member in members:
            await self.process_job(member)
        return len(members)

    async def process_job(self, member: str) -> bool:
        """
        Run one pending job given its raw stored member.

        Returns False when the job was skipped because another worker holds
        its lock.
        """
        try:
            job = Job.model_validate_json(member)
        except PydanticValidationError:
            logger.error("Dropping undecodable job member from pending set")
            await self.store.remove_by_value(PENDING_KEY, member)
            return True

        lock_key = f"{LOCK_KEY_PREFIX}{job.id}"
        token = await self.lock.acquire(lock_key, self.lock_ttl_ms)
        if token is None:
            logger.debug("Job %s locked by another worker, skipping", job.id)
            return False

        try:
            handler = self._handlers.get(job.type)
            if handler is None:
                await self._handle_unknown_type(member, job)
                return True

            try:
                await handler(job)
            except Exception as exc:
                await self._handle_failure(member, job, exc)
            else:
                await self.store.remove_by_value(PENDING_KEY, member)
                logger.info(
                    "Job completed",
                    extra=build_log_context(job_id=job.id, job_type=job.type),
                )
        finally:
            await self.lock.release(lock_key, token)
        return True

    async def _handle_unknown_type(self, member: str, job: Job) -> None:
        await self.store.remove_by_value(PENDING_KEY, member)
        context = build_log_context(job_id=job.id, job_type=job.type)
        if not self.dead_letter_unknown_types:
            logger.error("No handler for job type %s, dropping job", job.type, extra=context)
            return

        job.last_error = f"No handler registered for job type: {job.type}"
        job.dead_letter_reason = DeadLetterReason.UNKNOWN_JOB_TYPE.value
        await self.store.add_scored(DEAD_LETTER_KEY, self._now_ms(), job.model_dump_json())
        logger.error(
            "No handler for job type %s, moved to dead-letter", job.type, extra=context
        )

    async def _handle_failure(self, member: str, job: Job, exc: Exception) -> None:
        job.attempts += 1
        job.last_error = str(exc) or type(exc).__name__
        await self.store.remove_by_value(PENDING_KEY, member)

        context = build_log_context(
            job_id=job.id,
            job_type=job.type,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            error_class=type(exc).__name__,
        )
        now_ms = self._now_ms()
        if job.attempts >= job.max_attempts:
            job.dead_letter_reason = DeadLetterReason.MAX_ATTEMPTS.value
            await self.store.add_scored(DEAD_LETTER_KEY, now_ms, job.model_dump_json())
            logger.error("Job exhausted retries, moved to dead-letter", extra=context)
            return

        job.scheduled_at = now_ms + backoff_delay_ms(job.attempts)
        await self.store.add_scored(PENDING_KEY, job.scheduled_at, job.model_dump_json())
        logger.warning(
            "Job failed, retrying in %ss",
            backoff_delay_ms(job.attempts) // 1000,
            extra=context,
        )

    # =========================================================================
    # Operations
    # =========================================================================

    async def get_queue_stats(self) -> QueueStats:
        return QueueStats(
            pending=await self.store.count(PENDING_KEY),
            dead_letter=await self.store.count(DEAD_LETTER_KEY),
        )

    async def list_dead_letter_jobs(self, limit: int = 100) -> list[Job]:
        jobs = []
        for member in await self.store.range_all(DEAD_LETTER_KEY, limit):
            try:
                jobs.append(Job.model_validate_json(member))
            except PydanticValidationError:
                logger.warning("Skipping undecodable dead-letter member")
        return jobs

    async def retry_dead_letter_job(self, job_id: str) -> bool:
        """Move a dead-lettered job back to pending with a fresh attempt budget."""
        for member in await self.store.range_all(DEAD_LETTER_KEY):
            try:
                job = Job.model_validate_json(member)
            except PydanticValidationError:
                continue
            if job.id != job_id:
                continue

            # Removal decides the winner when two retries race.
            if not await self.store.remove_by_value(DEAD_LETTER_KEY, member):
                return False

            job.attempts = 0
            job.scheduled_at = self._now_ms()
            job.last_error = None
            job.dead_letter_reason = None
            await self.store.add_scored(PENDING_KEY, job.scheduled_at, job.model_dump_json())
            logger.info(
                "Dead-letter job re-queued",
                extra=build_log_context(job_id=job.id, job_type=job.type),
            )
            return True
        return False

    async def clear_dead_letter_queue(self) -> int:
        cleared = await self.store.clear(DEAD_LETTER_KEY)
        logger.info("Cleared %s dead-letter jobs", cleared)
        return cleared

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling task. Calling start() on a running queue does nothing."""
        if self.is_running:
            return
        logger.info(
            "Job queue starting (poll interval: %ss, batch size: %s)",
            self.poll_interval,
            self.batch_size,
        )
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Job queue stopped")

    async def run(self) -> None:
        """Poll forever. start() runs this as a background task."""
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Error in job queue poll loop")
            await asyncio.sleep(self.poll_interval)
