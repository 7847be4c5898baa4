"""SQLAlchemy ORM models."""

from qcsat.db.models.events import CsatResponse, InboundEvent
from qcsat.db.models.integrations import (
    Integration,
    IntegrationConnection,
    OutboundAction,
    ProjectIntegration,
)
from qcsat.db.models.tenancy import Organization, Project

__all__ = [
    "CsatResponse",
    "InboundEvent",
    "Integration",
    "IntegrationConnection",
    "Organization",
    "OutboundAction",
    "Project",
    "ProjectIntegration",
]
