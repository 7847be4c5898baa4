"""Outbound action execution against external work trackers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from qcsat.core.structured_logging import build_log_context
from qcsat.db.enums import ConnectionStatus, OutboundActionStatus
from qcsat.jobs.utils import require_uuid
from qcsat.services import integration_service, outbound_executors

logger = logging.getLogger(__name__)


async def process_outbound_action(db, job, client=None) -> None:
    """
    Execute an OutboundAction.

    Payload:
        - action_id: UUID of the OutboundAction

    Failures mark the action FAILED and re-raise so the queue retries.
    """
    action_id = require_uuid(job.payload, "action_id")
    action = integration_service.get_outbound_action(db, action_id)
    if not action:
        logger.error("Outbound action %s not found", action_id, extra=build_log_context(job_id=job.id))
        return

    if action.status == OutboundActionStatus.SUCCESS.value:
        logger.info("Outbound action %s already completed", action_id)
        return

    context = build_log_context(
        job_id=job.id, integration_id=action.integration_id, action_id=str(action_id)
    )
    integration = integration_service.get_integration(db, action.integration_id)
    connection = integration_service.get_connection(db, integration.id)
    if connection is None or connection.status != ConnectionStatus.CONNECTED.value:
        action.status = OutboundActionStatus.FAILED.value
        action.error_message = "No connected integration found"
        db.commit()
        logger.warning("Outbound action has no connected integration", extra=context)
        return

    action.attempt_count = (action.attempt_count or 0) + 1
    action.last_attempt_at = datetime.now(timezone.utc)
    action.status = OutboundActionStatus.RETRYING.value
    db.commit()

    try:
        external_item_id = await outbound_executors.execute_outbound_action(
            integration.type,
            integration_service.get_access_token(connection),
            connection.config or {},
            action.payload or {},
            client=client,
        )
    except Exception as e:
        action.status = OutboundActionStatus.FAILED.value
        action.error_message = (str(e) or type(e).__name__)[:2000]
        db.commit()
        integration_service.record_connection_error(db, connection, action.error_message)
        logger.error("Outbound action failed: %s", type(e).__name__, extra=context)
        raise

    action.status = OutboundActionStatus.SUCCESS.value
    action.external_item_id = external_item_id
    action.error_message = None
    action.completed_at = datetime.now(timezone.utc)
    db.commit()
    integration_service.record_connection_success(db, connection)
    logger.info("Outbound action completed: %s", external_item_id, extra=context)
