"""
Internal endpoints for queue operations and job producers.

Protected by X-Internal-Secret header.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from qcsat.core.deps import get_db, get_job_queue, verify_internal_secret
from qcsat.core.errors import NotFoundError
from qcsat.db.models import Project
from qcsat.schemas.integrations import OutboundActionCreate, OutboundActionRead
from qcsat.schemas.job import (
    ClearDeadLetterResponse,
    DeadLetterJobRead,
    QueueStats,
    RetryDeadLetterResponse,
    ScheduledJobResponse,
    ScheduleInboundEventRequest,
)
from qcsat.services import integration_service

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


# =============================================================================
# Queue
# =============================================================================

@router.get("/queue/stats", response_model=QueueStats)
async def queue_stats(queue=Depends(get_job_queue)):
    return await queue.get_queue_stats()


@router.get("/queue/dead-letter", response_model=list[DeadLetterJobRead])
async def list_dead_letter(
    limit: int = Query(100, ge=1, le=1000),
    queue=Depends(get_job_queue),
):
    jobs = await queue.list_dead_letter_jobs(limit)
    return [DeadLetterJobRead(**job.model_dump()) for job in jobs]


@router.post("/queue/dead-letter/{job_id}/retry", response_model=RetryDeadLetterResponse)
async def retry_dead_letter(job_id: str, queue=Depends(get_job_queue)):
    if not await queue.retry_dead_letter_job(job_id):
        raise NotFoundError("Dead-letter job")
    return RetryDeadLetterResponse(job_id=job_id, retried=True)


@router.delete("/queue/dead-letter", response_model=ClearDeadLetterResponse)
async def clear_dead_letter(queue=Depends(get_job_queue)):
    return ClearDeadLetterResponse(cleared=await queue.clear_dead_letter_queue())


# =============================================================================
# Producers
# =============================================================================

@router.post("/events/{event_id}/schedule", response_model=ScheduledJobResponse)
async def schedule_inbound_event(
    event_id: UUID,
    data: ScheduleInboundEventRequest,
    db: Session = Depends(get_db),
    queue=Depends(get_job_queue),
):
    """Queue a RECEIVED event for materialization, with its late score if given."""
    job_id = await integration_service.schedule_inbound_event(
        db, queue, event_id, score=data.score, delay_ms=data.delay_ms
    )
    return ScheduledJobResponse(job_id=job_id)


@router.post("/projects/{project_id}/outbound-actions", response_model=OutboundActionRead)
async def create_outbound_action(
    project_id: UUID,
    data: OutboundActionCreate,
    db: Session = Depends(get_db),
    queue=Depends(get_job_queue),
):
    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.deleted_at.is_(None))
        .first()
    )
    if not project:
        raise NotFoundError("Project")
    return await integration_service.create_outbound_action(
        db, queue, project.organization_id, project.id, data
    )
