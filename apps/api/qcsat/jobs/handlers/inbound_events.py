"""Deferred inbound event processing."""

from __future__ import annotations

import logging

from qcsat.core.structured_logging import build_log_context
from qcsat.jobs.utils import require_uuid
from qcsat.services import inbound_event_service

logger = logging.getLogger(__name__)


async def process_inbound_event(db, job) -> None:
    """
    Materialize a stored RECEIVED event.

    Payload:
        - event_id: UUID of the InboundEvent
        - score: optional score that arrived after the event
    """
    payload = job.payload or {}
    event_id = require_uuid(payload, "event_id")

    event = inbound_event_service.get_inbound_event(db, event_id)
    if not event:
        logger.error("Inbound event %s not found", event_id, extra=build_log_context(job_id=job.id))
        return

    try:
        result = inbound_event_service.materialize_pending_event(
            db, event_id, score=payload.get("score")
        )
    except Exception as e:
        db.rollback()
        event = inbound_event_service.get_inbound_event(db, event_id)
        if event:
            inbound_event_service.mark_event_failed(db, event, str(e) or type(e).__name__)
        raise

    logger.info(
        "Inbound event processed",
        extra=build_log_context(
            job_id=job.id,
            event_id=event_id,
            csat_response_id=str(result.csat_response_id) if result.csat_response_id else None,
        ),
    )
