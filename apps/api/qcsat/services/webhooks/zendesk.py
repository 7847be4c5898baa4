"""Zendesk satisfaction rating webhook handler."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from qcsat.core.config import settings
from qcsat.core.errors import UnauthorizedError
from qcsat.core.structured_logging import build_log_context
from qcsat.db.enums import IntegrationType
from qcsat.schemas.events import ZendeskWebhookPayload
from qcsat.services import integration_service
from qcsat.services.event_normalizers import normalize_zendesk_ticket
from qcsat.services.webhook_signatures import verify_prefixed_hmac_signature
from qcsat.services.webhooks.base import (
    accepted,
    load_integration,
    parse_json,
    read_body_safe,
    require_webhook_secret,
    validate_payload,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-zendesk-webhook-signature"
TIMESTAMP_HEADER = "x-zendesk-webhook-signature-timestamp"


class ZendeskWebhookHandler:
    async def handle(self, request: Request, db: Session, integration_id: UUID, **kwargs):
        """
        Receive a ticket update carrying a satisfaction rating.

        good -> 5, bad -> 1. Updates whose rating is offered, unoffered or
        missing are acknowledged without being stored, so the ticket id stays
        free for the real rating. The ticket id is the dedup key.
        """
        body = await read_body_safe(request)
        integration = load_integration(db, integration_id, IntegrationType.ZENDESK.value)
        secret = require_webhook_secret(integration)

        signature = request.headers.get(SIGNATURE_HEADER)
        timestamp = request.headers.get(TIMESTAMP_HEADER)
        if not verify_prefixed_hmac_signature(
            body,
            signature,
            timestamp,
            secret,
            tolerance=settings.WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS,
        ):
            logger.warning("Zendesk webhook invalid signature for integration %s", integration_id)
            raise UnauthorizedError("Invalid signature")

        data = parse_json(body)
        payload = validate_payload(ZendeskWebhookPayload, data)
        normalized = normalize_zendesk_ticket(payload.ticket, raw_payload=data)
        if normalized.normalized_score is None:
            logger.info(
                "Zendesk ticket update without a rating ignored",
                extra=build_log_context(
                    integration_id=integration_id, external_id=normalized.external_id
                ),
            )
            return {"received": True, "ignored": "unscored"}

        result = await integration_service.ingest_inbound_event(
            db, kwargs.get("queue"), integration.id, normalized
        )
        return accepted(result)
