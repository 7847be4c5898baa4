"""Webhooks router - inbound third-party events."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from qcsat.core.deps import get_db
from qcsat.core.errors import NotFoundError
from qcsat.services.webhooks.registry import get_handler

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{provider}/{integration_id}")
async def receive_webhook(
    provider: str,
    integration_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Receive a provider webhook for one integration.

    Responds synchronously: 2xx once the event is stored (or recognised as
    a replay), 401 on a bad signature, 4xx on a malformed payload.
    """
    try:
        handler = get_handler(provider)
    except KeyError:
        raise NotFoundError("Webhook provider")
    queue = getattr(request.app.state, "job_queue", None)
    return await handler.handle(request, db, integration_id=integration_id, queue=queue)
