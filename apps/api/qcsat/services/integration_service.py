"""Integration service: catalog, connections, project links, inbound and outbound flows."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from qcsat.core.encryption import decrypt_token, encrypt_token, rotate_token
from qcsat.core.errors import ConflictError, NotFoundError, ValidationError
from qcsat.core.structured_logging import build_log_context
from qcsat.db.enums import (
    AuthType,
    ConnectionStatus,
    InboundEventStatus,
    IntegrationDirection,
    IntegrationType,
    JobType,
    OutboundActionStatus,
    OutboundActionType,
)
from qcsat.db.models import (
    CsatResponse,
    Integration,
    IntegrationConnection,
    OutboundAction,
    Project,
    ProjectIntegration,
)
from qcsat.schemas.events import MaterializeResult, NormalizedEvent
from qcsat.schemas.integrations import (
    CatalogEntry,
    ConnectionUpsert,
    IntegrationCreate,
    IntegrationUpdate,
    OutboundActionCreate,
    ProjectIntegrationCreate,
    ProjectIntegrationUpdate,
)
from qcsat.services import inbound_event_service

if TYPE_CHECKING:
    from qcsat.jobs.queue import JobQueue

logger = logging.getLogger(__name__)


INTEGRATION_CATALOG: dict[IntegrationType, dict] = {
    IntegrationType.ZENDESK: {
        "name": "Zendesk",
        "description": "Import tickets and satisfaction ratings from Zendesk",
        "direction": IntegrationDirection.INBOUND,
        "auth_types": [AuthType.OAUTH2, AuthType.API_KEY],
    },
    IntegrationType.GA4: {
        "name": "Google Analytics 4",
        "description": "Import conversion events and user behavior data",
        "direction": IntegrationDirection.INBOUND,
        "auth_types": [AuthType.OAUTH2],
    },
    IntegrationType.APP_STORE: {
        "name": "Apple App Store",
        "description": "Import app reviews and ratings",
        "direction": IntegrationDirection.INBOUND,
        "auth_types": [AuthType.API_KEY],
    },
    IntegrationType.PLAY_STORE: {
        "name": "Google Play Store",
        "description": "Import app reviews and ratings",
        "direction": IntegrationDirection.INBOUND,
        "auth_types": [AuthType.API_KEY],
    },
    IntegrationType.TABLEAU: {
        "name": "Tableau",
        "description": "Import data from Tableau dashboards",
        "direction": IntegrationDirection.INBOUND,
        "auth_types": [AuthType.API_KEY],
    },
    IntegrationType.JIRA: {
        "name": "Jira",
        "description": "Create and sync issues in Jira",
        "direction": IntegrationDirection.OUTBOUND,
        "auth_types": [AuthType.OAUTH2, AuthType.API_KEY],
    },
    IntegrationType.ASANA: {
        "name": "Asana",
        "description": "Create and sync tasks in Asana",
        "direction": IntegrationDirection.OUTBOUND,
        "auth_types": [AuthType.OAUTH2],
    },
    IntegrationType.MONDAY: {
        "name": "Monday.com",
        "description": "Create and sync items in Monday.com",
        "direction": IntegrationDirection.OUTBOUND,
        "auth_types": [AuthType.API_KEY],
    },
    IntegrationType.AIRTABLE: {
        "name": "Airtable",
        "description": "Create and sync records in Airtable",
        "direction": IntegrationDirection.OUTBOUND,
        "auth_types": [AuthType.API_KEY],
    },
    IntegrationType.WRIKE: {
        "name": "Wrike",
        "description": "Create and sync tasks in Wrike",
        "direction": IntegrationDirection.OUTBOUND,
        "auth_types": [AuthType.OAUTH2, AuthType.API_KEY],
    },
}

OUTBOUND_DIRECTIONS = {IntegrationDirection.OUTBOUND.value, IntegrationDirection.BOTH.value}
AUTO_CREATE_SETTINGS_KEY = "auto_create"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Catalog
# =============================================================================

def get_integration_catalog() -> list[CatalogEntry]:
    return [CatalogEntry(type=type_, **info) for type_, info in INTEGRATION_CATALOG.items()]


# =============================================================================
# Integrations
# =============================================================================

def list_integrations(db: Session, org_id: UUID) -> list[Integration]:
    return (
        db.query(Integration)
        .filter(Integration.organization_id == org_id, Integration.deleted_at.is_(None))
        .order_by(Integration.created_at.desc())
        .all()
    )


def get_integration(db: Session, integration_id: UUID, org_id: UUID | None = None) -> Integration:
    """Non-deleted integration, optionally scoped to an org. Raises NotFoundError."""
    query = db.query(Integration).filter(
        Integration.id == integration_id, Integration.deleted_at.is_(None)
    )
    if org_id is not None:
        query = query.filter(Integration.organization_id == org_id)
    integration = query.first()
    if not integration:
        raise NotFoundError("Integration")
    return integration


def get_active_integration(db: Session, integration_id: UUID) -> Integration:
    """Integration that may receive events: not deleted and enabled."""
    integration = get_integration(db, integration_id)
    if not integration.is_enabled:
        raise NotFoundError("Integration")
    return integration


def create_integration(db: Session, org_id: UUID, data: IntegrationCreate) -> Integration:
    catalog = INTEGRATION_CATALOG.get(data.type)
    if catalog is None:
        raise ValidationError(f"Unknown integration type: {data.type}")

    direction = data.direction or catalog["direction"]
    integration = Integration(
        organization_id=org_id,
        type=data.type.value,
        direction=direction.value,
        display_name=data.display_name,
        description=data.description,
    )
    db.add(integration)
    db.commit()
    db.refresh(integration)
    logger.info(
        "Integration created",
        extra=build_log_context(integration_id=integration.id, type=data.type.value),
    )
    return integration


def update_integration(db: Session, integration: Integration, data: IntegrationUpdate) -> Integration:
    updates = data.model_dump(exclude_unset=True)
    for field, value in updates.items():
        setattr(integration, field, value)
    db.commit()
    db.refresh(integration)
    logger.info("Integration updated", extra=build_log_context(integration_id=integration.id))
    return integration


def delete_integration(db: Session, integration: Integration) -> None:
    """Soft delete. Events and responses keep their reference."""
    integration.deleted_at = _now()
    db.commit()
    logger.info("Integration deleted", extra=build_log_context(integration_id=integration.id))


def set_webhook_secret(db: Session, integration: Integration, secret: str | None) -> Integration:
    integration.webhook_secret_encrypted = encrypt_token(secret) or None
    db.commit()
    return integration


def get_webhook_secret(integration: Integration) -> str:
    return decrypt_token(integration.webhook_secret_encrypted)


# =============================================================================
# Connections
# =============================================================================

def get_connection(db: Session, integration_id: UUID) -> IntegrationConnection | None:
    return (
        db.query(IntegrationConnection)
        .filter(IntegrationConnection.integration_id == integration_id)
        .first()
    )


def upsert_connection(
    db: Session, integration: Integration, data: ConnectionUpsert
) -> IntegrationConnection:
    """Create or replace the integration's credentials. Tokens are encrypted."""
    connection = get_connection(db, integration.id)
    if connection is None:
        connection = IntegrationConnection(integration_id=integration.id)
        db.add(connection)

    connection.auth_type = data.auth_type.value
    connection.access_token_encrypted = encrypt_token(data.access_token) or None
    connection.refresh_token_encrypted = encrypt_token(data.refresh_token) or None
    connection.expires_at = data.expires_at
    connection.config = data.config
    connection.status = ConnectionStatus.CONNECTED.value
    connection.error_message = None
    connection.error_count = 0

    db.commit()
    db.refresh(connection)
    logger.info(
        "Integration connection upserted",
        extra=build_log_context(integration_id=integration.id, connection_id=str(connection.id)),
    )
    return connection


def disconnect_integration(db: Session, integration: Integration) -> None:
    connection = get_connection(db, integration.id)
    if connection:
        connection.status = ConnectionStatus.DISCONNECTED.value
        connection.access_token_encrypted = None
        connection.refresh_token_encrypted = None
        db.commit()
    logger.info("Integration disconnected", extra=build_log_context(integration_id=integration.id))


def get_access_token(connection: IntegrationConnection) -> str:
    return decrypt_token(connection.access_token_encrypted)


def record_connection_error(db: Session, connection: IntegrationConnection, message: str) -> None:
    connection.last_error_at = _now()
    connection.error_message = message[:2000]
    connection.error_count = (connection.error_count or 0) + 1
    db.commit()


def record_connection_success(db: Session, connection: IntegrationConnection) -> None:
    connection.last_synced_at = _now()
    connection.error_count = 0
    db.commit()


def rotate_connection_credentials(db: Session) -> int:
    """Re-encrypt every stored token and webhook secret under the current key."""
    rotated = 0
    for connection in db.query(IntegrationConnection).all():
        if connection.access_token_encrypted:
            connection.access_token_encrypted = rotate_token(connection.access_token_encrypted)
            rotated += 1
        if connection.refresh_token_encrypted:
            connection.refresh_token_encrypted = rotate_token(connection.refresh_token_encrypted)
            rotated += 1
    for integration in db.query(Integration).filter(Integration.webhook_secret_encrypted.isnot(None)):
        integration.webhook_secret_encrypted = rotate_token(integration.webhook_secret_encrypted)
        rotated += 1
    db.commit()
    logger.info("Rotated %s integration credentials", rotated)
    return rotated


# =============================================================================
# Project integrations
# =============================================================================

def list_project_integrations(db: Session, project_id: UUID) -> list[ProjectIntegration]:
    return (
        db.query(ProjectIntegration)
        .filter(ProjectIntegration.project_id == project_id)
        .order_by(ProjectIntegration.created_at.desc())
        .all()
    )


def get_project_integration(
    db: Session, project_id: UUID, project_integration_id: UUID
) -> ProjectIntegration:
    pi = (
        db.query(ProjectIntegration)
        .filter(
            ProjectIntegration.id == project_integration_id,
            ProjectIntegration.project_id == project_id,
        )
        .first()
    )
    if not pi:
        raise NotFoundError("Project integration")
    return pi


def _get_project(db: Session, project_id: UUID, org_id: UUID) -> Project:
    project = (
        db.query(Project)
        .filter(
            Project.id == project_id,
            Project.organization_id == org_id,
            Project.deleted_at.is_(None),
        )
        .first()
    )
    if not project:
        raise NotFoundError("Project")
    return project


def create_project_integration(
    db: Session, org_id: UUID, project_id: UUID, data: ProjectIntegrationCreate
) -> ProjectIntegration:
    _get_project(db, project_id, org_id)
    get_integration(db, data.integration_id, org_id)

    pi = ProjectIntegration(
        project_id=project_id,
        integration_id=data.integration_id,
        moment_id=data.moment_id,
        settings=data.settings,
        is_enabled=data.is_enabled,
    )
    db.add(pi)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Integration is already linked to this project")
    db.refresh(pi)
    logger.info(
        "Project integration created",
        extra=build_log_context(integration_id=data.integration_id, project_id=project_id),
    )
    return pi


def update_project_integration(
    db: Session, pi: ProjectIntegration, data: ProjectIntegrationUpdate
) -> ProjectIntegration:
    updates = data.model_dump(exclude_unset=True)
    if "settings" in updates:
        settings_update = updates.pop("settings") or {}
        pi.settings = {**(pi.settings or {}), **settings_update}
    for field, value in updates.items():
        setattr(pi, field, value)
    db.commit()
    db.refresh(pi)
    return pi


def delete_project_integration(db: Session, pi: ProjectIntegration) -> None:
    db.delete(pi)
    db.commit()


def resolve_project_integration(db: Session, integration: Integration) -> ProjectIntegration | None:
    """First enabled project link, oldest first."""
    return (
        db.query(ProjectIntegration)
        .filter(
            ProjectIntegration.integration_id == integration.id,
            ProjectIntegration.is_enabled.is_(True),
        )
        .order_by(ProjectIntegration.created_at.asc())
        .first()
    )


# =============================================================================
# Inbound events
# =============================================================================

def process_inbound_event(
    db: Session, integration_id: UUID, event: NormalizedEvent
) -> MaterializeResult:
    """
    Route a normalized event to its project and materialize it.

    The moment comes from the normalizer when it resolved one, otherwise
    from the project link.
    """
    integration = get_active_integration(db, integration_id)
    pi = resolve_project_integration(db, integration)
    if pi is None:
        raise ValidationError("No project configured for this integration")

    if event.moment_id is None and pi.moment_id:
        event = event.model_copy(update={"moment_id": pi.moment_id})

    return inbound_event_service.materialize_event(
        db,
        integration_id=integration.id,
        project_id=pi.project_id,
        event=event,
    )


# =============================================================================
# Outbound actions
# =============================================================================

async def create_outbound_action(
    db: Session,
    queue: "JobQueue",
    org_id: UUID,
    project_id: UUID,
    data: OutboundActionCreate,
) -> OutboundAction:
    """Persist a PENDING action and enqueue its execution."""
    integration = get_integration(db, data.integration_id, org_id)
    if integration.direction not in OUTBOUND_DIRECTIONS:
        raise ValidationError("Integration does not support outbound actions")

    action = OutboundAction(
        integration_id=integration.id,
        project_id=project_id,
        moment_id=data.moment_id,
        csat_response_id=data.csat_response_id,
        recommendation_id=data.recommendation_id,
        action_type=data.action_type.value,
        payload=data.payload,
        status=OutboundActionStatus.PENDING.value,
    )
    db.add(action)
    db.commit()
    db.refresh(action)

    job_id = await queue.enqueue(
        JobType.EXECUTE_OUTBOUND_ACTION.value, {"action_id": str(action.id)}
    )
    logger.info(
        "Outbound action created",
        extra=build_log_context(
            integration_id=integration.id,
            project_id=project_id,
            job_id=job_id,
            action_id=str(action.id),
            action_type=action.action_type,
        ),
    )
    return action


def get_outbound_action(db: Session, action_id: UUID) -> OutboundAction | None:
    return db.query(OutboundAction).filter(OutboundAction.id == action_id).first()


def list_outbound_actions(db: Session, integration_id: UUID, limit: int = 50) -> list[OutboundAction]:
    return (
        db.query(OutboundAction)
        .filter(OutboundAction.integration_id == integration_id)
        .order_by(OutboundAction.created_at.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# Job producers
# =============================================================================

async def schedule_inbound_event(
    db: Session,
    queue: "JobQueue",
    event_id: UUID,
    score: int | None = None,
    delay_ms: int = 0,
) -> str:
    """Enqueue deferred materialization of a RECEIVED event, optionally with its late score."""
    event = inbound_event_service.get_inbound_event(db, event_id)
    if event is None:
        raise NotFoundError("Inbound event")
    if event.status != InboundEventStatus.RECEIVED.value:
        raise ConflictError(f"Inbound event is already {event.status}")

    payload: dict = {"event_id": str(event.id)}
    if score is not None:
        payload["score"] = score
    job_id = await queue.enqueue(JobType.PROCESS_INBOUND_EVENT.value, payload, delay_ms=delay_ms)
    logger.info(
        "Inbound event scheduled",
        extra=build_log_context(integration_id=event.integration_id, event_id=event.id, job_id=job_id),
    )
    return job_id


def _auto_create_rule(pi: ProjectIntegration) -> dict | None:
    rule = (pi.settings or {}).get(AUTO_CREATE_SETTINGS_KEY)
    if not isinstance(rule, dict) or not isinstance(rule.get("max_score"), int):
        return None
    try:
        action_type = OutboundActionType(
            rule.get("action_type") or OutboundActionType.CREATE_ISSUE.value
        )
    except ValueError:
        logger.warning(
            "Ignoring auto_create rule with unknown action type %r",
            rule.get("action_type"),
            extra=build_log_context(integration_id=pi.integration_id, project_id=pi.project_id),
        )
        return None
    return {**rule, "action_type": action_type}


async def trigger_outbound_actions(
    db: Session, queue: "JobQueue", csat_response_id: UUID
) -> list[OutboundAction]:
    """
    Create outbound actions for a freshly stored CSAT response.

    Each enabled project link to an active outbound integration whose
    settings hold an ``auto_create`` rule fires once when the score is at or
    below the rule's ``max_score``. The rule may also set ``action_type``
    (default ``create_issue``) and a ``task_template`` merged into the
    action payload.
    """
    response = db.query(CsatResponse).filter(CsatResponse.id == csat_response_id).first()
    if response is None:
        return []
    project = db.query(Project).filter(Project.id == response.project_id).first()
    if project is None:
        return []

    links = (
        db.query(ProjectIntegration)
        .join(Integration, ProjectIntegration.integration_id == Integration.id)
        .filter(
            ProjectIntegration.project_id == response.project_id,
            ProjectIntegration.is_enabled.is_(True),
            Integration.is_enabled.is_(True),
            Integration.deleted_at.is_(None),
            Integration.direction.in_(sorted(OUTBOUND_DIRECTIONS)),
        )
        .order_by(ProjectIntegration.created_at.asc())
        .all()
    )

    actions = []
    for pi in links:
        rule = _auto_create_rule(pi)
        if rule is None or response.score > rule["max_score"]:
            continue
        payload = {
            **(rule.get("task_template") or {}),
            "score": response.score,
            "csat_response_id": str(response.id),
            "source_type": response.source_type,
        }
        data = OutboundActionCreate(
            integration_id=pi.integration_id,
            action_type=rule["action_type"],
            payload=payload,
            moment_id=response.moment_id,
            csat_response_id=response.id,
        )
        actions.append(
            await create_outbound_action(db, queue, project.organization_id, project.id, data)
        )
    return actions


async def ingest_inbound_event(
    db: Session,
    queue: "JobQueue | None",
    integration_id: UUID,
    event: NormalizedEvent,
) -> MaterializeResult:
    """
    Materialize a webhook event and fire outbound rules for a new response.

    Replays never fire rules. Without a queue the event is still stored and
    rules are skipped.
    """
    result = process_inbound_event(db, integration_id, event)
    if result.created and result.csat_response_id is not None:
        if queue is None:
            logger.warning(
                "Job queue not configured, outbound rules skipped",
                extra=build_log_context(integration_id=integration_id, event_id=result.event_id),
            )
        else:
            await trigger_outbound_actions(db, queue, result.csat_response_id)
    return result
