"""Turn provider payloads into NormalizedEvent records."""

from __future__ import annotations

import math

from qcsat.db.enums import InboundSourceType
from qcsat.schemas.events import (
    GA4Event,
    GA4EventParam,
    GA4MappingConfig,
    GA4UserProperty,
    NormalizedEvent,
    ScoreScale,
    StoreReview,
    UserPropertyToPersona,
    ZendeskTicket,
)

SCORE_MIN = 1
SCORE_MAX = 5

# Zendesk satisfaction scores. "offered"/"unoffered" carry no rating.
ZENDESK_SCORE_MAP = {"good": 5, "bad": 1}


def extract_param_value(
    params: list[GA4EventParam], key: str
) -> str | int | float | None:
    """First matching param's value: string, then int, then float, then double."""
    param = next((p for p in params if p.key == key), None)
    if param is None:
        return None
    value = param.value
    for candidate in (value.string_value, value.int_value, value.float_value, value.double_value):
        if candidate is not None:
            return candidate
    return None


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _clamp_score(value: float) -> int:
    if math.isnan(value):
        return SCORE_MIN
    if math.isinf(value):
        return SCORE_MAX if value > 0 else SCORE_MIN
    return min(SCORE_MAX, max(SCORE_MIN, _round_half_up(value)))


def normalize_score(value: float, scale: ScoreScale | None = None) -> int:
    """
    Map a raw rating onto the 1-5 CSAT scale.

    Linear interpolation from [min, max] to [target_min, target_max], then
    round half up and clamp. Always returns an int in [1, 5].
    """
    if scale is None:
        return _clamp_score(float(value))

    span = scale.max - scale.min
    if span == 0 or not math.isfinite(span):
        return _clamp_score(scale.target_min)

    normalized = (
        (float(value) - scale.min) / span * (scale.target_max - scale.target_min)
        + scale.target_min
    )
    return _clamp_score(normalized)


def resolve_moment_id(event_name: str, event_to_moment: dict[str, str] | None) -> str | None:
    if not event_to_moment:
        return None
    return event_to_moment.get(event_name)


def resolve_persona_id(
    user_properties: list[GA4UserProperty] | None,
    mapping: UserPropertyToPersona | None,
) -> str | None:
    if not mapping or not user_properties:
        return None
    prop = next((p for p in user_properties if p.key == mapping.property_key), None)
    if prop is None or not prop.value.string_value:
        return None
    return mapping.value_to_persona_id.get(prop.value.string_value)


def build_ga4_external_id(event: GA4Event) -> str:
    return f"ga4:{event.user_pseudo_id}:{event.event_name}:{event.event_timestamp}"


def extract_ga4_score(event: GA4Event, mapping: GA4MappingConfig | None) -> int | None:
    """Score for the configured rating event. Non-numeric params yield no score."""
    if mapping is None or mapping.score_extraction is None:
        return None
    extraction = mapping.score_extraction
    if event.event_name != extraction.event_name:
        return None
    raw = extract_param_value(event.event_params, extraction.param_key)
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    return normalize_score(raw, extraction.scale)


def normalize_ga4_event(event: GA4Event, mapping: GA4MappingConfig | None) -> NormalizedEvent:
    mapping = mapping or GA4MappingConfig()
    return NormalizedEvent(
        source_type=InboundSourceType.GA4_EVENT,
        external_id=build_ga4_external_id(event),
        moment_id=resolve_moment_id(event.event_name, mapping.event_to_moment),
        persona_id=resolve_persona_id(event.user_properties, mapping.user_property_to_persona),
        normalized_score=extract_ga4_score(event, mapping),
        payload=event.model_dump(mode="json"),
        metadata={
            "eventName": event.event_name,
            "userId": event.user_id,
            "userPseudoId": event.user_pseudo_id,
            "device": event.device,
            "geo": event.geo,
            "trafficSource": event.traffic_source,
        },
    )


def normalize_zendesk_ticket(ticket: ZendeskTicket, raw_payload: dict | None = None) -> NormalizedEvent:
    rating = ticket.satisfaction_rating
    score = None
    if rating and rating.score:
        score = ZENDESK_SCORE_MAP.get(rating.score.lower())
    return NormalizedEvent(
        source_type=InboundSourceType.ZENDESK_SATISFACTION,
        external_id=str(ticket.id),
        normalized_score=score,
        payload=raw_payload if raw_payload is not None else {"ticket": ticket.model_dump(mode="json")},
        metadata={
            "ticketId": str(ticket.id),
            "subject": ticket.subject,
            "status": ticket.status,
            "comment": rating.comment if rating else None,
            "tags": ticket.tags,
        },
    )


def normalize_store_review(
    review: StoreReview,
    source_type: InboundSourceType,
    raw_payload: dict | None = None,
) -> NormalizedEvent:
    """App Store and Play Store reviews share a shape; the source type tells them apart."""
    if source_type not in (InboundSourceType.APP_STORE_REVIEW, InboundSourceType.PLAY_STORE_REVIEW):
        raise ValueError(f"Not a store review source: {source_type}")
    return NormalizedEvent(
        source_type=source_type,
        external_id=review.id,
        normalized_score=normalize_score(review.rating),
        payload=raw_payload if raw_payload is not None else review.model_dump(mode="json"),
        metadata={
            "title": review.title,
            "author": review.author,
            "version": review.version,
            "date": review.date,
        },
    )
