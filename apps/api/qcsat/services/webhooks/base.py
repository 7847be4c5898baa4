"""Webhook handler interface and shared request helpers."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, TypeVar
from uuid import UUID

from fastapi import Request, Response
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from qcsat.core.config import settings
from qcsat.core.errors import AppError, NotFoundError, ServiceUnavailableError, ValidationError
from qcsat.db.models import Integration
from qcsat.schemas.events import MaterializeResult
from qcsat.services import integration_service

logger = logging.getLogger(__name__)

WebhookResult = dict | Response
ModelT = TypeVar("ModelT", bound=BaseModel)


class WebhookHandler(Protocol):
    async def handle(
        self, request: Request, db: Session, integration_id: UUID, **kwargs
    ) -> WebhookResult:
        """Handle a webhook request."""


class PayloadTooLargeError(AppError):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"

    def __init__(self, message: str = "Payload too large"):
        super().__init__(message)


async def read_body_safe(request: Request, max_bytes: int | None = None) -> bytes:
    """Read the raw body, refusing anything over the size cap."""
    limit = max_bytes or settings.WEBHOOK_MAX_PAYLOAD_BYTES
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > limit:
                raise PayloadTooLargeError()
        except ValueError:
            pass

    chunks: list[bytes] = []
    total = 0
    async for chunk in request.stream():
        if not chunk:
            continue
        total += len(chunk)
        if total > limit:
            raise PayloadTooLargeError()
        chunks.append(chunk)
    return b"".join(chunks)


def parse_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON")


def validate_payload(model: type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        errors = [
            {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
            for err in exc.errors()
        ]
        raise ValidationError("Invalid webhook payload", details={"errors": errors})


def load_integration(db: Session, integration_id: UUID, expected_type: str) -> Integration:
    """Enabled integration of the expected type. Other types are reported as not found."""
    integration = integration_service.get_active_integration(db, integration_id)
    if integration.type != expected_type:
        logger.warning(
            "Webhook for integration %s sent to %s endpoint", integration_id, expected_type
        )
        raise NotFoundError("Integration")
    return integration


def require_webhook_secret(integration: Integration) -> str:
    secret = integration_service.get_webhook_secret(integration)
    if not secret:
        logger.error("Webhook secret not configured for integration %s", integration.id)
        raise ServiceUnavailableError("Webhook not configured")
    return secret


def accepted(result: MaterializeResult, **extra) -> dict:
    return {
        "received": True,
        "event_id": str(result.event_id),
        "csat_response_id": str(result.csat_response_id) if result.csat_response_id else None,
        "duplicate": not result.created,
        **extra,
    }
