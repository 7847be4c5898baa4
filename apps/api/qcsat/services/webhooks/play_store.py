"""Google Play review webhook handler (RSA-SHA256 signed)."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from qcsat.core.errors import UnauthorizedError
from qcsat.db.enums import InboundSourceType, IntegrationType
from qcsat.schemas.events import StoreReview
from qcsat.services import integration_service
from qcsat.services.event_normalizers import normalize_store_review
from qcsat.services.webhook_signatures import verify_rsa_signature
from qcsat.services.webhooks.base import (
    accepted,
    load_integration,
    parse_json,
    read_body_safe,
    require_webhook_secret,
    validate_payload,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-goog-signature"


class PlayStoreWebhookHandler:
    async def handle(self, request: Request, db: Session, integration_id: UUID, **kwargs):
        """The integration's webhook secret holds the publisher's RSA public key."""
        body = await read_body_safe(request)
        integration = load_integration(db, integration_id, IntegrationType.PLAY_STORE.value)
        public_key = require_webhook_secret(integration)

        if not verify_rsa_signature(body, request.headers.get(SIGNATURE_HEADER), public_key):
            logger.warning("Play Store webhook invalid signature for integration %s", integration_id)
            raise UnauthorizedError("Invalid signature")

        data = parse_json(body)
        review = validate_payload(StoreReview, data)
        normalized = normalize_store_review(
            review, InboundSourceType.PLAY_STORE_REVIEW, raw_payload=data
        )
        result = await integration_service.ingest_inbound_event(
            db, kwargs.get("queue"), integration.id, normalized
        )
        return accepted(result)
