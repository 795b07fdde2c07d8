"""Fasten webhook endpoint.

Fasten retries deliveries that are not acknowledged, so every delivery that
passes authentication is answered with ``{"received": true}``; processing
problems are recorded on the affected connections instead.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from api.dependencies import get_webhook_service
from database import get_db
from schemas.fasten_webhook import WebhookAck
from services.exceptions import WebhookAuthenticationError
from services.webhook_service import FastenWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/fasten", tags=["fasten"])


@router.post("/webhook", response_model=WebhookAck)
def receive_webhook(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    service: FastenWebhookService = Depends(get_webhook_service),
    x_fasten_signature: Optional[str] = Header(default=None),
    x_webhook_secret: Optional[str] = Header(default=None),
):
    """Receive an EHI export success/failure notification from Fasten.

    The body is validated by the service after the shared secret is checked.

    Raises:
        HTTPException: 401 Unauthorized if the shared secret does not match.
    """
    try:
        service.handle(db, payload, x_fasten_signature or x_webhook_secret)
    except WebhookAuthenticationError as e:
        logger.warning("Rejected Fasten webhook: %s", e)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    except Exception:
        db.rollback()
        logger.exception("Fasten webhook processing failed: type=%s", payload.get("type"))
    return WebhookAck()
