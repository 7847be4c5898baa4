"""Integration, inbound event and outbound action enums."""

from enum import Enum


class IntegrationType(str, Enum):
    """Third-party systems a workspace can connect."""

    ZENDESK = "zendesk"
    GA4 = "ga4"
    APP_STORE = "app_store"
    PLAY_STORE = "play_store"
    TABLEAU = "tableau"
    JIRA = "jira"
    ASANA = "asana"
    MONDAY = "monday"
    AIRTABLE = "airtable"
    WRIKE = "wrike"


class IntegrationDirection(str, Enum):
    """Which way data flows through an integration."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"
    BOTH = "both"


class AuthType(str, Enum):
    OAUTH2 = "oauth2"
    API_KEY = "api_key"  # nosec B105


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class InboundSourceType(str, Enum):
    """Kinds of third-party events that become CSAT responses."""

    ZENDESK_SATISFACTION = "zendesk_satisfaction"
    GA4_EVENT = "ga4_event"
    APP_STORE_REVIEW = "app_store_review"
    PLAY_STORE_REVIEW = "play_store_review"
    MANUAL = "manual"


class InboundEventStatus(str, Enum):
    """Lifecycle of a stored inbound event. PROCESSED and FAILED are terminal."""

    RECEIVED = "received"
    PROCESSED = "processed"
    FAILED = "failed"


class OutboundActionType(str, Enum):
    CREATE_ISSUE = "create_issue"
    CREATE_TASK = "create_task"
    CREATE_RECORD = "create_record"
    CREATE_ITEM = "create_item"


class OutboundActionStatus(str, Enum):
    """Status of an outbound action against an external system."""

    PENDING = "pending"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_INBOUND_STATUSES = frozenset(
    {InboundEventStatus.PROCESSED, InboundEventStatus.FAILED}
)
