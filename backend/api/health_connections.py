"""Health connection API endpoints.

Two routers:
- ``/api/patients/me/health-connections``: the acting patient's own links
- ``/api/patients/{patient_id}/health-connections``: patient-scoped views for
  providers and administrators (access enforced by the service)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.dependencies import get_current_actor, get_health_connection_service
from api.helpers import connection_status_response, http_error
from database import get_db
from integrations.exceptions import PartnerConfigurationError
from schemas.health_connection import (
    AddConnectionRequest,
    AddConnectionResponse,
    ConnectionStatusResponse,
    ConnectUrlResponse,
    EhiExportResponse,
    HealthConnectionResponse,
    HealthDataResponse,
    RemoveConnectionResponse,
)
from services.access_control import Actor
from services.exceptions import HealthDataError
from services.health_connection_service import HealthConnectionService

logger = logging.getLogger(__name__)

SERVICE_ERRORS = (HealthDataError, PartnerConfigurationError)

me_router = APIRouter(prefix="/api/patients/me/health-connections", tags=["health-connections"])
router = APIRouter(prefix="/api/patients/{patient_id}/health-connections", tags=["health-connections"])


# ---------------------------------------------------------------------------
# Acting patient
# ---------------------------------------------------------------------------


@me_router.get("", response_model=list[HealthConnectionResponse])
def list_my_connections(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    """List the acting patient's health connections, newest first."""
    try:
        return service.list_my_connections(db, actor)
    except SERVICE_ERRORS as e:
        raise http_error(e)


@me_router.post("", response_model=AddConnectionResponse)
def add_connection(
    body: AddConnectionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    """Save the org connection returned by the Fasten Connect redirect.

    Idempotent: re-adding an existing link returns it unchanged. A fresh
    EHI export is requested either way; its failure does not fail this call.
    """
    try:
        result = service.add_connection(db, actor, body.org_connection_id, body.source_name)
    except SERVICE_ERRORS as e:
        raise http_error(e)
    db.commit()
    db.refresh(result.connection)
    if result.created:
        logger.info("Added health connection %s for user %s", result.connection.org_connection_id, actor.user_id)

    response = AddConnectionResponse.model_validate(result.connection)
    if result.ehi_export is not None:
        response.ehi_export = EhiExportResponse(
            task_id=result.ehi_export.task_id,
            status=result.ehi_export.status.value,
        )
    return response


@me_router.get("/connect-url", response_model=ConnectUrlResponse)
def get_connect_url(
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    """URL that starts the Fasten Connect flow (null when not configured)."""
    return ConnectUrlResponse(url=service.get_connect_url())


@me_router.get("/health-data", response_model=HealthDataResponse)
def get_my_health_data(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    """Imported observations, medications, conditions and encounters."""
    try:
        return service.get_my_health_data(db, actor)
    except SERVICE_ERRORS as e:
        raise http_error(e)


@me_router.get("/{org_connection_id}/status", response_model=Optional[ConnectionStatusResponse])
def get_my_connection_status(
    org_connection_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    """Fasten's status for one of the patient's connections (null if unavailable)."""
    try:
        status = service.get_my_connection_status(db, actor, org_connection_id)
    except SERVICE_ERRORS as e:
        raise http_error(e)
    return connection_status_response(status)


@me_router.delete("/{org_connection_id}", response_model=RemoveConnectionResponse)
def remove_connection(
    org_connection_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    """Remove a connection and the data imported through it."""
    try:
        service.remove_connection(db, actor, org_connection_id)
    except SERVICE_ERRORS as e:
        raise http_error(e)
    db.commit()
    logger.info("Removed health connection %s for user %s", org_connection_id, actor.user_id)
    return RemoveConnectionResponse()


# ---------------------------------------------------------------------------
# Patient-scoped (provider / administrator)
# ---------------------------------------------------------------------------


@router.get("", response_model=list[HealthConnectionResponse])
def list_connections_for_patient(
    patient_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    try:
        return service.list_connections_for_patient(db, patient_id, actor)
    except SERVICE_ERRORS as e:
        raise http_error(e)


@router.get("/health-data", response_model=HealthDataResponse)
def get_health_data(
    patient_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    try:
        return service.get_health_data(db, patient_id, actor)
    except SERVICE_ERRORS as e:
        raise http_error(e)


@router.get("/{org_connection_id}/status", response_model=Optional[ConnectionStatusResponse])
def get_connection_status(
    patient_id: str,
    org_connection_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    try:
        status = service.get_connection_status(db, patient_id, org_connection_id, actor)
    except SERVICE_ERRORS as e:
        raise http_error(e)
    return connection_status_response(status)


@router.post("/{org_connection_id}/request-export", response_model=Optional[EhiExportResponse])
def request_export(
    patient_id: str,
    org_connection_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: HealthConnectionService = Depends(get_health_connection_service),
):
    """Request a fresh EHI export; results arrive via the webhook.

    Raises:
        HTTPException:
            - 400 Bad Request: Fasten is not configured
            - 403 Forbidden: Actor may not access this patient
            - 404 Not Found: Patient or connection does not exist
    """
    try:
        export = service.request_export(db, patient_id, org_connection_id, actor)
    except SERVICE_ERRORS as e:
        raise http_error(e)
    db.commit()
    if export is None:
        return None
    return EhiExportResponse(task_id=export.task_id, status=export.status.value)
