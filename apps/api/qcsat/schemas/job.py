"""Pydantic schemas for background jobs."""

from typing import Any

from pydantic import BaseModel, Field


class Job(BaseModel):
    """
    A queued job as stored in the ordered set.

    Timestamps are milliseconds since the epoch; scheduled_at is also the
    member's score in the pending set.
    """

    id: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    max_attempts: int = 3
    created_at: int
    scheduled_at: int
    last_error: str | None = None
    dead_letter_reason: str | None = None


class QueueStats(BaseModel):
    """Queue depth."""
    pending: int
    dead_letter: int


class DeadLetterJobRead(BaseModel):
    id: str
    type: str
    attempts: int
    max_attempts: int
    created_at: int
    last_error: str | None = None
    dead_letter_reason: str | None = None


class RetryDeadLetterResponse(BaseModel):
    job_id: str
    retried: bool


class ClearDeadLetterResponse(BaseModel):
    cleared: int


class ScheduleInboundEventRequest(BaseModel):
    """Late score for a stored event that arrived without one."""
    score: int | None = Field(default=None, ge=1, le=5)
    delay_ms: int = Field(default=0, ge=0)


class ScheduledJobResponse(BaseModel):
    job_id: str
