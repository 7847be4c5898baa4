"""Inbound event and CSAT response models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from qcsat.db.base import Base, JSONType
from qcsat.db.enums import InboundEventStatus
from qcsat.db.models.tenancy import utcnow


class InboundEvent(Base):
    """
    A third-party event as received.

    Rows are never deleted. After insert only status, processed_at and
    error_message change, and a terminal status never changes again.
    (integration_id, external_id) is unique so replays are stored once.
    """

    __tablename__ = "inbound_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("integrations.id"), nullable=False
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    moment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    external_id: Mapped[str] = mapped_column(String(500), nullable=False)
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False)
    normalized_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=InboundEventStatus.RECEIVED.value, nullable=False
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    received_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("integration_id", "external_id", name="uq_inbound_event_external"),
        Index("idx_inbound_events_project_status", "project_id", "status"),
    )


class CsatResponse(Base):
    """A normalized CSAT score. At most one per inbound event."""

    __tablename__ = "csat_responses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    moment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    persona_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    integration_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("integrations.id"), nullable=True
    )
    inbound_event_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("inbound_events.id"), unique=True, nullable=True
    )
    external_reference: Mapped[str | None] = mapped_column(String(500), nullable=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    # "metadata" is reserved on declarative classes
    response_metadata: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
