"""Shared API helpers for route handlers.

Maps service-layer exceptions to HTTP responses and builds response
payloads used across multiple route files.
"""

from fastapi import HTTPException

from integrations.exceptions import PartnerConfigurationError
from integrations.fasten_client import FastenConnectionStatus
from schemas.health_connection import ConnectionStatusResponse
from services.exceptions import (
    AccessDeniedError,
    NotFoundError,
    ValidationError,
    WebhookAuthenticationError,
)

ERROR_STATUS_CODES = {
    NotFoundError: 404,
    AccessDeniedError: 403,
    ValidationError: 400,
    PartnerConfigurationError: 400,
    WebhookAuthenticationError: 401,
}


def http_error(exc: Exception) -> HTTPException:
    """Translate a service exception into an HTTPException.

    Args:
        exc: An exception raised by a service.

    Returns:
        HTTPException with the mapped status code (500 for anything unmapped).
    """
    for exc_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail="Internal server error")


def connection_status_response(status: FastenConnectionStatus | None) -> ConnectionStatusResponse | None:
    """Build a ConnectionStatusResponse from a Fasten status (None passes through)."""
    if status is None:
        return None
    return ConnectionStatusResponse(
        org_connection_id=status.org_connection_id,
        status=status.status.value,
        org_id=status.org_id,
        platform_type=status.platform_type,
        api_mode=status.api_mode,
        scope=status.scope,
        consent_expires_at=status.consent_expires_at,
    )
