"""GA4 batch import: BigQuery export rows to inbound events and CSAT responses."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from qcsat.core.structured_logging import build_log_context
from qcsat.schemas.events import (
    GA4Event,
    GA4ImportError,
    GA4ImportRequest,
    GA4ImportResult,
    GA4MappingConfig,
    ScoreExtraction,
    ScoreScale,
)
from qcsat.services import inbound_event_service
from qcsat.services.event_normalizers import normalize_ga4_event

logger = logging.getLogger(__name__)

DEFAULT_RATING_EVENT = "satisfaction_rating"
DEFAULT_RATING_PARAM = "rating"

_BIGQUERY_FIELDS = (
    "event_name",
    "event_timestamp",
    "event_date",
    "user_id",
    "user_pseudo_id",
    "event_params",
    "user_properties",
    "device",
    "geo",
    "traffic_source",
)


def default_mapping_config() -> GA4MappingConfig:
    """Rating event ``satisfaction_rating`` with a 1-5 ``rating`` param."""
    return GA4MappingConfig(
        score_extraction=ScoreExtraction(
            event_name=DEFAULT_RATING_EVENT,
            param_key=DEFAULT_RATING_PARAM,
            scale=ScoreScale(min=1, max=5, target_min=1, target_max=5),
        )
    )


def parse_ga4_timestamp(micros: str | int) -> datetime:
    """GA4 timestamps are microseconds since the epoch."""
    return datetime.fromtimestamp(int(micros) / 1_000_000, tz=timezone.utc)


def parse_bigquery_export(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Pick the GA4 event columns out of BigQuery export rows.

    Rows stay as dicts so import_ga4_events can report bad rows by index.
    """
    events = []
    for row in rows:
        event = {key: row.get(key) for key in _BIGQUERY_FIELDS}
        event["event_params"] = event["event_params"] or []
        event["user_properties"] = event["user_properties"] or []
        events.append(event)
    return events


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, PydanticValidationError):
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return str(exc) or type(exc).__name__


def import_ga4_events(db: Session, request: GA4ImportRequest) -> GA4ImportResult:
    """
    Import a batch of GA4 events.

    Events without event_name or event_timestamp are skipped. Any other
    per-event failure is recorded in ``errors`` and the batch continues.
    """
    result = GA4ImportResult()
    mapping = request.mapping_config
    context = build_log_context(
        integration_id=request.integration_id, project_id=request.project_id
    )
    logger.info(
        "Starting GA4 import of %s events", len(request.events), extra=context
    )

    for index, raw in enumerate(request.events):
        if not isinstance(raw, dict) or not raw.get("event_name") or not raw.get("event_timestamp"):
            result.skipped += 1
            continue
        try:
            event = GA4Event.model_validate(raw)
            normalized = normalize_ga4_event(event, mapping)
            outcome = inbound_event_service.materialize_event(
                db,
                integration_id=request.integration_id,
                project_id=request.project_id,
                event=normalized,
            )
        except Exception as exc:
            db.rollback()
            message = _describe_error(exc)
            result.errors.append(GA4ImportError(index=index, error=message))
            logger.error(
                "GA4 event processing error at index %s: %s",
                index,
                type(exc).__name__,
                extra=context,
            )
            continue

        if outcome.created and outcome.csat_response_id:
            result.csat_responses_created += 1
        result.processed += 1

    logger.info(
        "GA4 import completed: processed=%s skipped=%s responses=%s errors=%s",
        result.processed,
        result.skipped,
        result.csat_responses_created,
        len(result.errors),
        extra=context,
    )
    return result
