"""App Store Server Notification handler (JWS signed with an x5c chain)."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from qcsat.core.config import settings
from qcsat.core.errors import ServiceUnavailableError, UnauthorizedError, ValidationError
from qcsat.db.enums import InboundSourceType, IntegrationType
from qcsat.schemas.events import StoreReview
from qcsat.services import integration_service
from qcsat.services.event_normalizers import normalize_store_review
from qcsat.services.webhook_signatures import verify_app_store_notification
from qcsat.services.webhooks.base import (
    accepted,
    load_integration,
    parse_json,
    read_body_safe,
    validate_payload,
)

logger = logging.getLogger(__name__)


def _extract_review(claims: dict) -> dict | None:
    review = claims.get("review")
    if review is None and isinstance(claims.get("data"), dict):
        review = claims["data"].get("review")
    return review if isinstance(review, dict) else None


class AppStoreWebhookHandler:
    async def handle(self, request: Request, db: Session, integration_id: UUID, **kwargs):
        """
        Verify the signedPayload against the pinned Apple root, then store
        the review it carries. Verified notifications without a review are
        acknowledged and ignored.
        """
        body = await read_body_safe(request)
        integration = load_integration(db, integration_id, IntegrationType.APP_STORE.value)

        if not settings.APP_STORE_ROOT_CERT_PEM:
            logger.error("APP_STORE_ROOT_CERT_PEM not configured")
            raise ServiceUnavailableError("Webhook not configured")

        data = parse_json(body)
        signed_payload = data.get("signedPayload") if isinstance(data, dict) else None
        if not signed_payload:
            raise ValidationError("Missing signedPayload")

        verification = verify_app_store_notification(signed_payload, settings.APP_STORE_ROOT_CERT_PEM)
        if not verification.valid:
            logger.warning(
                "App Store notification rejected (%s) for integration %s",
                verification.reason,
                integration_id,
            )
            raise UnauthorizedError("Invalid signature")

        claims = verification.payload or {}
        review_data = _extract_review(claims)
        if review_data is None:
            return {"received": True, "ignored": claims.get("notificationType")}

        review = validate_payload(StoreReview, review_data)
        normalized = normalize_store_review(
            review, InboundSourceType.APP_STORE_REVIEW, raw_payload=claims
        )
        result = await integration_service.ingest_inbound_event(
            db, kwargs.get("queue"), integration.id, normalized
        )
        return accepted(result)
