"""Inbound event store and CSAT response materialization."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from qcsat.core.structured_logging import build_log_context
from qcsat.db.enums import InboundEventStatus, TERMINAL_INBOUND_STATUSES
from qcsat.db.models import CsatResponse, InboundEvent
from qcsat.schemas.events import MaterializeResult, NormalizedEvent
from qcsat.services.event_normalizers import SCORE_MAX, SCORE_MIN

logger = logging.getLogger(__name__)


def get_inbound_event(db: Session, event_id: UUID) -> InboundEvent | None:
    return db.query(InboundEvent).filter(InboundEvent.id == event_id).first()


def find_by_external_id(
    db: Session, integration_id: UUID, external_id: str
) -> InboundEvent | None:
    return (
        db.query(InboundEvent)
        .filter(
            InboundEvent.integration_id == integration_id,
            InboundEvent.external_id == external_id,
        )
        .first()
    )


def list_inbound_events(
    db: Session,
    integration_id: UUID,
    limit: int = 50,
    status: InboundEventStatus | None = None,
) -> list[InboundEvent]:
    query = db.query(InboundEvent).filter(InboundEvent.integration_id == integration_id)
    if status:
        query = query.filter(InboundEvent.status == status.value)
    return query.order_by(InboundEvent.received_at.desc()).limit(limit).all()


def get_response_for_event(db: Session, event_id: UUID) -> CsatResponse | None:
    return db.query(CsatResponse).filter(CsatResponse.inbound_event_id == event_id).first()


def _existing_result(db: Session, event: InboundEvent) -> MaterializeResult:
    response = get_response_for_event(db, event.id)
    return MaterializeResult(
        event_id=event.id,
        csat_response_id=response.id if response else None,
        created=False,
    )


def _build_response(event: InboundEvent, normalized: NormalizedEvent | None, score: int) -> CsatResponse:
    metadata = None
    persona_id = None
    if normalized is not None:
        metadata = normalized.metadata if normalized.metadata is not None else normalized.payload
        persona_id = normalized.persona_id
    return CsatResponse(
        project_id=event.project_id,
        moment_id=event.moment_id,
        persona_id=persona_id,
        integration_id=event.integration_id,
        inbound_event_id=event.id,
        external_reference=event.external_id,
        score=score,
        source_type=event.source_type,
        response_metadata=metadata,
    )


def materialize_event(
    db: Session,
    *,
    integration_id: UUID,
    project_id: UUID,
    event: NormalizedEvent,
) -> MaterializeResult:
    """
    Store an inbound event and, when it carries a score, its CSAT response.

    The first delivery of an (integration_id, external_id) pair wins; later
    deliveries return the stored event with created=False. Concurrent
    deliveries are settled by the unique constraint.
    """
    existing = find_by_external_id(db, integration_id, event.external_id)
    if existing:
        logger.info(
            "Inbound event already stored",
            extra=build_log_context(integration_id=integration_id, event_id=existing.id),
        )
        return _existing_result(db, existing)

    has_score = event.normalized_score is not None
    inbound = InboundEvent(
        integration_id=integration_id,
        project_id=project_id,
        moment_id=event.moment_id,
        external_id=event.external_id,
        source_type=event.source_type.value,
        payload=event.payload,
        normalized_score=event.normalized_score,
        status=(InboundEventStatus.PROCESSED if has_score else InboundEventStatus.RECEIVED).value,
        processed_at=datetime.now(timezone.utc) if has_score else None,
    )
    response = None
    try:
        db.add(inbound)
        db.flush()
        if has_score:
            response = _build_response(inbound, event, event.normalized_score)
            db.add(response)
            db.flush()
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_by_external_id(db, integration_id, event.external_id)
        if existing is None:
            raise
        logger.info(
            "Inbound event stored concurrently, using existing row",
            extra=build_log_context(integration_id=integration_id, event_id=existing.id),
        )
        return _existing_result(db, existing)

    logger.info(
        "Inbound event materialized",
        extra=build_log_context(
            integration_id=integration_id,
            project_id=project_id,
            event_id=inbound.id,
            source_type=event.source_type.value,
            has_score=has_score,
        ),
    )
    return MaterializeResult(
        event_id=inbound.id,
        csat_response_id=response.id if response else None,
        created=True,
    )


def mark_event_processed(db: Session, event: InboundEvent) -> bool:
    """RECEIVED -> PROCESSED. Returns False if the event is already terminal."""
    if event.status in {s.value for s in TERMINAL_INBOUND_STATUSES}:
        return False
    event.status = InboundEventStatus.PROCESSED.value
    event.processed_at = datetime.now(timezone.utc)
    event.error_message = None
    db.commit()
    return True


def mark_event_failed(db: Session, event: InboundEvent, error: str) -> bool:
    """RECEIVED -> FAILED. Returns False if the event is already terminal."""
    if event.status in {s.value for s in TERMINAL_INBOUND_STATUSES}:
        return False
    event.status = InboundEventStatus.FAILED.value
    event.error_message = error[:2000]
    db.commit()
    logger.warning(
        "Inbound event failed",
        extra=build_log_context(integration_id=event.integration_id, event_id=event.id),
    )
    return True


def materialize_pending_event(
    db: Session, event_id: UUID, score: int | None = None
) -> MaterializeResult:
    """
    Create the CSAT response for a stored RECEIVED event.

    Used by deferred processing when the score arrives after the event.
    Already-terminal events are returned unchanged.
    """
    event = get_inbound_event(db, event_id)
    if event is None:
        raise LookupError(f"Inbound event {event_id} not found")

    if event.status != InboundEventStatus.RECEIVED.value:
        return _existing_result(db, event)

    if score is not None:
        if isinstance(score, bool) or not isinstance(score, int) or not SCORE_MIN <= score <= SCORE_MAX:
            raise ValueError(
                f"Score must be an integer between {SCORE_MIN} and {SCORE_MAX}, got {score!r}"
            )
        event.normalized_score = score
    if event.normalized_score is None:
        raise ValueError(f"Inbound event {event_id} has no score to materialize")

    response = get_response_for_event(db, event.id)
    created = response is None
    try:
        if response is None:
            response = _build_response(event, None, event.normalized_score)
            response.response_metadata = event.payload
            db.add(response)
            db.flush()
        event.status = InboundEventStatus.PROCESSED.value
        event.processed_at = datetime.now(timezone.utc)
        db.commit()
    except IntegrityError:
        db.rollback()
        refreshed = get_inbound_event(db, event_id)
        return _existing_result(db, refreshed)

    return MaterializeResult(event_id=event.id, csat_response_id=response.id, created=created)
