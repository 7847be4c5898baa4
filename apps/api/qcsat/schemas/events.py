"""Pydantic schemas for inbound provider payloads and normalized events."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from qcsat.db.enums import InboundSourceType


class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# GA4 (BigQuery export / Data API)
# =============================================================================

class GA4ParamValue(BaseModel):
    string_value: str | None = None
    int_value: int | None = None
    float_value: float | None = None
    double_value: float | None = None


class GA4EventParam(BaseModel):
    key: str
    value: GA4ParamValue = Field(default_factory=GA4ParamValue)


class GA4UserPropertyValue(BaseModel):
    string_value: str | None = None
    int_value: int | None = None
    set_timestamp_micros: str | None = None


class GA4UserProperty(BaseModel):
    key: str
    value: GA4UserPropertyValue = Field(default_factory=GA4UserPropertyValue)


class GA4Event(BaseModel):
    """One GA4 event. event_timestamp is microseconds since the epoch."""

    model_config = ConfigDict(extra="allow")

    event_name: str = Field(..., min_length=1)
    event_timestamp: str = Field(..., min_length=1)
    event_date: str | None = None
    user_id: str | None = None
    user_pseudo_id: str = Field(..., min_length=1)
    event_params: list[GA4EventParam] = Field(default_factory=list)
    user_properties: list[GA4UserProperty] = Field(default_factory=list)
    device: dict[str, Any] | None = None
    geo: dict[str, Any] | None = None
    traffic_source: dict[str, Any] | None = None

    @field_validator("event_timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Any:
        """BigQuery exports INT64 timestamps; keep them as strings."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("event_params", "user_properties", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class ScoreScale(CamelModel):
    min: float
    max: float
    target_min: float = 1
    target_max: float = 5


class ScoreExtraction(CamelModel):
    event_name: str
    param_key: str
    scale: ScoreScale | None = None


class UserPropertyToPersona(CamelModel):
    property_key: str
    value_to_persona_id: dict[str, str] = Field(default_factory=dict)


class GA4MappingConfig(CamelModel):
    """How GA4 events map onto moments, personas and scores."""

    event_to_moment: dict[str, str] = Field(default_factory=dict)
    user_property_to_persona: UserPropertyToPersona | None = None
    score_extraction: ScoreExtraction | None = None


class GA4ImportRequest(CamelModel):
    """
    Batch import. Events are kept raw so one malformed event is reported
    per-index instead of rejecting the whole batch.
    """

    integration_id: UUID
    project_id: UUID
    events: list[Any]
    mapping_config: GA4MappingConfig | None = None


class GA4ImportError(BaseModel):
    index: int
    error: str


class GA4ImportResult(BaseModel):
    processed: int = 0
    skipped: int = 0
    csat_responses_created: int = 0
    errors: list[GA4ImportError] = Field(default_factory=list)


# =============================================================================
# Ticketing (Zendesk)
# =============================================================================

class ZendeskSatisfactionRating(BaseModel):
    score: str | None = None
    comment: str | None = None


class ZendeskTicket(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int | str
    subject: str | None = None
    status: str | None = None
    satisfaction_rating: ZendeskSatisfactionRating | None = None
    tags: list[str] = Field(default_factory=list)
    custom_fields: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("tags", "custom_fields", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class ZendeskWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    ticket: ZendeskTicket


# =============================================================================
# App Store / Play Store reviews
# =============================================================================

class StoreReview(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    rating: int = Field(..., ge=1, le=5)
    title: str | None = None
    body: str | None = None
    author: str | None = None
    version: str | None = None
    date: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


# =============================================================================
# Normalized output
# =============================================================================

class NormalizedEvent(BaseModel):
    """Canonical form of any inbound event, ready to be materialized."""

    source_type: InboundSourceType
    external_id: str = Field(..., min_length=1, max_length=500)
    moment_id: str | None = None
    persona_id: str | None = None
    normalized_score: int | None = Field(None, ge=1, le=5)
    payload: dict[str, Any]
    metadata: dict[str, Any] | None = None


class MaterializeResult(BaseModel):
    event_id: UUID
    csat_response_id: UUID | None = None
    created: bool
