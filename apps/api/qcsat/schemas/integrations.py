"""Pydantic schemas for integrations, connections and outbound actions."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from qcsat.db.enums import (
    AuthType,
    IntegrationDirection,
    IntegrationType,
    OutboundActionType,
)


class CatalogEntry(BaseModel):
    type: IntegrationType
    name: str
    description: str
    direction: IntegrationDirection
    auth_types: list[AuthType]


class IntegrationCreate(BaseModel):
    type: IntegrationType
    direction: IntegrationDirection | None = None  # Defaults to the catalog direction
    display_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)


class IntegrationUpdate(BaseModel):
    display_name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    is_enabled: bool | None = None


class ConnectionUpsert(BaseModel):
    """Credentials arrive in plaintext and are encrypted before storage."""

    auth_type: AuthType
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class ProjectIntegrationCreate(BaseModel):
    integration_id: UUID
    moment_id: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    is_enabled: bool = True


class ProjectIntegrationUpdate(BaseModel):
    moment_id: str | None = None
    settings: dict[str, Any] | None = None  # Merged into existing settings
    is_enabled: bool | None = None


class OutboundActionCreate(BaseModel):
    integration_id: UUID
    action_type: OutboundActionType
    payload: dict[str, Any] = Field(default_factory=dict)
    moment_id: str | None = None
    csat_response_id: UUID | None = None
    recommendation_id: str | None = None



class OutboundActionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    integration_id: UUID
    project_id: UUID
    action_type: str
    status: str
    csat_response_id: UUID | None = None
    external_item_id: str | None = None
    error_message: str | None = None
    attempt_count: int
    created_at: datetime
    completed_at: datetime | None = None
