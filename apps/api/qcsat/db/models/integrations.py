"""Integration, connection and outbound action models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from qcsat.db.base import Base, JSONType
from qcsat.db.enums import ConnectionStatus, OutboundActionStatus
from qcsat.db.models.tenancy import utcnow


class Integration(Base):
    """
    A third-party system connected by an organization.

    Integrations are soft-deleted (deleted_at) and never hard-deleted, so
    inbound events and CSAT responses keep pointing at them.
    """

    __tablename__ = "integrations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    direction: Mapped[str] = mapped_column(String(20), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Shared secret for webhook signature verification (Fernet)
    webhook_secret_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    connection: Mapped["IntegrationConnection | None"] = relationship(
        back_populates="integration", uselist=False
    )
    project_integrations: Mapped[list["ProjectIntegration"]] = relationship(
        back_populates="integration", order_by="ProjectIntegration.created_at"
    )

    __table_args__ = (Index("idx_integrations_org_type", "organization_id", "type"),)


class IntegrationConnection(Base):
    """Credentials and health for one integration. Tokens are stored encrypted."""

    __tablename__ = "integration_connections"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("integrations.id"), unique=True, nullable=False
    )
    auth_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ConnectionStatus.CONNECTED.value, nullable=False
    )
    access_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Per-type settings: subdomain, cloud_id, project_key, board_id, base_id, ...
    config: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    last_synced_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_error_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    integration: Mapped["Integration"] = relationship(back_populates="connection")


class ProjectIntegration(Base):
    """Links an integration to a project, with optional moment attribution and settings."""

    __tablename__ = "project_integrations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    integration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("integrations.id"), nullable=False
    )
    moment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    settings: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    integration: Mapped["Integration"] = relationship(back_populates="project_integrations")

    __table_args__ = (
        UniqueConstraint("project_id", "integration_id", name="uq_project_integration"),
    )


class OutboundAction(Base):
    """An item to create in an external tool (issue, task, record)."""

    __tablename__ = "outbound_actions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("integrations.id"), nullable=False, index=True
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    moment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    csat_response_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("csat_responses.id"), nullable=True
    )
    recommendation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=OutboundActionStatus.PENDING.value, nullable=False
    )
    external_item_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_attempt_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
