"""Enum definitions for application constants."""

from qcsat.db.enums.integrations import (
    AuthType,
    ConnectionStatus,
    InboundEventStatus,
    InboundSourceType,
    IntegrationDirection,
    IntegrationType,
    OutboundActionStatus,
    OutboundActionType,
    TERMINAL_INBOUND_STATUSES,
)
from qcsat.db.enums.jobs import DeadLetterReason, JobType

__all__ = [
    "AuthType",
    "ConnectionStatus",
    "DeadLetterReason",
    "InboundEventStatus",
    "InboundSourceType",
    "IntegrationDirection",
    "IntegrationType",
    "JobType",
    "OutboundActionStatus",
    "OutboundActionType",
    "TERMINAL_INBOUND_STATUSES",
]
