"""GA4 event push handler (plain HMAC signed batches)."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from qcsat.core.errors import UnauthorizedError, ValidationError
from qcsat.db.enums import IntegrationType
from qcsat.schemas.events import GA4ImportRequest, GA4MappingConfig
from qcsat.services import ga4_import_service, integration_service
from qcsat.services.webhook_signatures import verify_hmac_signature
from qcsat.services.webhooks.base import (
    load_integration,
    parse_json,
    read_body_safe,
    require_webhook_secret,
    validate_payload,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-qcsat-signature"
MAPPING_SETTINGS_KEY = "ga4_mapping"


class GA4WebhookHandler:
    async def handle(self, request: Request, db: Session, integration_id: UUID, **kwargs):
        """
        Accept a batch of GA4 events: a JSON array, or {"events": [...]}.

        The mapping comes from the project link's settings, falling back to
        the default satisfaction_rating mapping.
        """
        body = await read_body_safe(request)
        integration = load_integration(db, integration_id, IntegrationType.GA4.value)
        secret = require_webhook_secret(integration)

        if not verify_hmac_signature(body, request.headers.get(SIGNATURE_HEADER), secret):
            logger.warning("GA4 webhook invalid signature for integration %s", integration_id)
            raise UnauthorizedError("Invalid signature")

        data = parse_json(body)
        events = data.get("events") if isinstance(data, dict) else data
        if not isinstance(events, list):
            raise ValidationError("Expected a list of events")

        pi = integration_service.resolve_project_integration(db, integration)
        if pi is None:
            raise ValidationError("No project configured for this integration")

        mapping_data = (pi.settings or {}).get(MAPPING_SETTINGS_KEY)
        mapping = (
            validate_payload(GA4MappingConfig, mapping_data)
            if mapping_data
            else ga4_import_service.default_mapping_config()
        )

        result = ga4_import_service.import_ga4_events(
            db,
            GA4ImportRequest(
                integration_id=integration.id,
                project_id=pi.project_id,
                events=events,
                mapping_config=mapping,
            ),
        )
        return {"received": True, **result.model_dump()}
