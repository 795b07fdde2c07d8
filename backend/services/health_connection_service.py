"""Health connection service - patient links to external health-record sources.

Owns the HealthConnection rows and orchestrates EHI export requests to
Fasten. Every caller-facing operation is authorized through an
:class:`~services.access_control.AccessPolicy` before any data is returned
or mutated.

Transaction convention: methods ``flush()``; the API layer commits.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import PartnerConfigurationError
from integrations.fasten_client import (
    FastenConnectClient,
    FastenConnectionStatus,
    FastenEhiExport,
)
from models import (
    HealthCondition,
    HealthConnection,
    HealthEncounter,
    HealthMedication,
    HealthObservation,
)
from schemas.health_connection import (
    ConditionResponse,
    EncounterResponse,
    HealthDataResponse,
    MedicationResponse,
    ObservationResponse,
)
from services.access_control import AccessPolicy, Actor, PatientAccessPolicy
from services.exceptions import (
    FAILURE_REASON_MAX_LENGTH,
    NotFoundError,
    ValidationError,
    failure_reason,
)
from services.fhir_extractors import recover_medication_name

logger = logging.getLogger(__name__)

CONNECT_CALLBACK_PATH = "/patient/health-connections/callback"


@dataclass
class AddConnectionResult:
    """Outcome of add_connection."""

    connection: HealthConnection
    created: bool
    ehi_export: Optional[FastenEhiExport] = None


class HealthConnectionService:
    """Service for managing health connections and their export lifecycle."""

    def __init__(
        self,
        client: Optional[FastenConnectClient] = None,
        access_policy: Optional[AccessPolicy] = None,
    ):
        """Initialize with optional collaborators for dependency injection.

        Args:
            client: Fasten client. If None, one is built from settings on
                    first use.
            access_policy: Authorization collaborator (defaults to
                           PatientAccessPolicy).
        """
        self._client = client
        self._access = access_policy or PatientAccessPolicy()

    @property
    def client(self) -> FastenConnectClient:
        """Get the Fasten client, creating it from settings if not provided."""
        if self._client is None:
            self._client = FastenConnectClient()
        return self._client

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_org_connection_id(org_connection_id: str) -> str:
        trimmed = (org_connection_id or "").strip()
        if not trimmed:
            raise ValidationError("org_connection_id is required")
        return trimmed

    @staticmethod
    def _find_connection(
        db: Session, patient_id: str, org_connection_id: str
    ) -> Optional[HealthConnection]:
        return (
            db.query(HealthConnection)
            .filter_by(patient_id=patient_id, org_connection_id=org_connection_id)
            .first()
        )

    def _get_connection_or_404(
        self, db: Session, patient_id: str, org_connection_id: str
    ) -> HealthConnection:
        connection = self._find_connection(
            db, patient_id, self._normalize_org_connection_id(org_connection_id)
        )
        if connection is None:
            raise NotFoundError("Connection not found")
        return connection

    @staticmethod
    def find_by_org_connection_id(db: Session, org_connection_id: str) -> list[HealthConnection]:
        """Return every local connection for an org connection id, across patients."""
        return (
            db.query(HealthConnection)
            .filter(HealthConnection.org_connection_id == org_connection_id)
            .order_by(HealthConnection.connected_at)
            .all()
        )

    @staticmethod
    def _list_for_patient(db: Session, patient_id: str) -> list[HealthConnection]:
        return (
            db.query(HealthConnection)
            .filter(HealthConnection.patient_id == patient_id)
            .order_by(HealthConnection.connected_at.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Export outcome bookkeeping (used by the webhook pipeline)
    # ------------------------------------------------------------------

    @staticmethod
    def mark_synced(connection: HealthConnection, task_id: Optional[str]) -> None:
        """Stamp a successful ingest and clear any prior failure."""
        connection.last_synced_at = datetime.now(timezone.utc)
        connection.last_export_task_id = task_id
        connection.last_export_failure_reason = None

    @staticmethod
    def record_export_failure(
        connections: list[HealthConnection],
        task_id: Optional[str],
        reason: str | BaseException,
    ) -> None:
        """Record a (truncated) failure reason and task id on each connection."""
        if isinstance(reason, BaseException):
            message = failure_reason(reason)
        else:
            message = reason[:FAILURE_REASON_MAX_LENGTH]
        for connection in connections:
            connection.last_export_task_id = task_id
            connection.last_export_failure_reason = message

    # ------------------------------------------------------------------
    # Connect flow
    # ------------------------------------------------------------------

    def get_connect_url(self) -> Optional[str]:
        """URL that starts the Fasten Connect flow, redirecting back to the frontend."""
        frontend_url = (settings.FRONTEND_URL or "http://localhost:5173").rstrip("/")
        return self.client.get_connect_url(f"{frontend_url}{CONNECT_CALLBACK_PATH}")

    def _trigger_export(self, connection: HealthConnection) -> Optional[FastenEhiExport]:
        """Best-effort export request; never raises."""
        if not self.client.is_configured():
            logger.warning(
                "Fasten not configured; skipping EHI export for org_connection_id=%s",
                connection.org_connection_id,
            )
            return None
        try:
            export = self.client.request_ehi_export(connection.org_connection_id)
        except Exception as e:
            logger.warning(
                "EHI export request failed (connection still saved): %s", e, exc_info=True
            )
            return None
        if export is None:
            logger.warning(
                "EHI export request returned nothing: patient=%s org_connection_id=%s",
                connection.patient_id, connection.org_connection_id,
            )
            return None
        connection.last_export_task_id = export.task_id
        return export

    # ------------------------------------------------------------------
    # Patient ("me") operations
    # ------------------------------------------------------------------

    def add_connection(
        self,
        db: Session,
        actor: Actor,
        org_connection_id: str,
        source_name: Optional[str] = None,
    ) -> AddConnectionResult:
        """Link the acting patient to an org connection and trigger an export.

        Adding an already-linked org connection is an idempotent success: no
        duplicate row is created, but the export is requested again (the
        caller may be retrying after a dropped response, and Fasten treats
        repeat requests as idempotent). The export trigger never fails the
        operation.

        Raises:
            ValidationError: Blank org connection id.
            AccessDeniedError / NotFoundError: Actor has no patient record.
        """
        patient = self._access.get_patient_for_actor(db, actor)
        trimmed = self._normalize_org_connection_id(org_connection_id)

        connection = self._find_connection(db, patient.id, trimmed)
        created = connection is None
        if created:
            connection = HealthConnection(
                patient_id=patient.id,
                org_connection_id=trimmed,
                source_name=source_name.strip() if source_name and source_name.strip() else None,
            )
            db.add(connection)
            db.flush()
            logger.info(
                "Health connection added: patient=%s org_connection_id=%s", patient.id, trimmed
            )
        else:
            logger.info(
                "Health connection already linked: patient=%s org_connection_id=%s; re-requesting export",
                patient.id, trimmed,
            )

        export = self._trigger_export(connection)
        db.flush()
        return AddConnectionResult(connection=connection, created=created, ehi_export=export)

    def remove_connection(self, db: Session, actor: Actor, org_connection_id: str) -> None:
        """Delete one of the acting patient's connections (and its snapshot rows).

        Raises:
            NotFoundError: No such connection for this patient.
        """
        patient = self._access.get_patient_for_actor(db, actor)
        connection = self._get_connection_or_404(db, patient.id, org_connection_id)
        db.delete(connection)
        db.flush()
        logger.info(
            "Health connection removed: patient=%s org_connection_id=%s",
            patient.id, connection.org_connection_id,
        )

    def list_my_connections(self, db: Session, actor: Actor) -> list[HealthConnection]:
        """List the acting patient's connections, newest first."""
        patient = self._access.get_patient_for_actor(db, actor)
        return self._list_for_patient(db, patient.id)

    def get_my_connection_status(
        self, db: Session, actor: Actor, org_connection_id: str
    ) -> Optional[FastenConnectionStatus]:
        patient = self._access.get_patient_for_actor(db, actor)
        return self.get_connection_status(db, patient.id, org_connection_id, actor)

    def get_my_health_data(self, db: Session, actor: Actor) -> HealthDataResponse:
        patient = self._access.get_patient_for_actor(db, actor)
        return self.get_health_data(db, patient.id, actor)

    # ------------------------------------------------------------------
    # Patient-scoped operations (provider / administrator / self)
    # ------------------------------------------------------------------

    def list_connections_for_patient(
        self, db: Session, patient_id: str, actor: Actor
    ) -> list[HealthConnection]:
        """List a patient's connections, newest first."""
        self._access.ensure_can_access_patient(db, patient_id, actor)
        return self._list_for_patient(db, patient_id)

    def get_connection_status(
        self, db: Session, patient_id: str, org_connection_id: str, actor: Actor
    ) -> Optional[FastenConnectionStatus]:
        """Ask Fasten for the status of one of the patient's connections.

        Returns:
            The status, or None if Fasten is unconfigured or the call failed.

        Raises:
            NotFoundError: No such connection for this patient.
        """
        self._access.ensure_can_access_patient(db, patient_id, actor)
        connection = self._get_connection_or_404(db, patient_id, org_connection_id)
        return self.client.get_connection_status(connection.org_connection_id)

    def request_export(
        self, db: Session, patient_id: str, org_connection_id: str, actor: Actor
    ) -> Optional[FastenEhiExport]:
        """Request a fresh EHI export for one of the patient's connections.

        Results arrive asynchronously via the webhook. Access is checked
        before anything about the Fasten configuration is revealed.

        Raises:
            AccessDeniedError: The actor may not access this patient.
            NotFoundError: No such connection for this patient.
            PartnerConfigurationError: Fasten is not configured.
        """
        self._access.ensure_can_access_patient(db, patient_id, actor)
        connection = self._get_connection_or_404(db, patient_id, org_connection_id)
        if not self.client.is_configured():
            raise PartnerConfigurationError(
                "Health connections are not configured", partner_name=self.client.partner_name
            )
        export = self.client.request_ehi_export(connection.org_connection_id)
        if export is not None:
            connection.last_export_task_id = export.task_id
            db.flush()
        return export

    def get_health_data(self, db: Session, patient_id: str, actor: Actor) -> HealthDataResponse:
        """Return the patient's imported clinical data across all connections.

        Medication names that were not extracted at ingest time are
        recovered from the stored raw record.
        """
        self._access.ensure_can_access_patient(db, patient_id, actor)

        observations = (
            db.query(HealthObservation)
            .filter(HealthObservation.patient_id == patient_id)
            .order_by(HealthObservation.effective_at.desc())
            .all()
        )
        medications = (
            db.query(HealthMedication)
            .filter(HealthMedication.patient_id == patient_id)
            .order_by(HealthMedication.prescribed_at.desc())
            .all()
        )
        conditions = (
            db.query(HealthCondition)
            .filter(HealthCondition.patient_id == patient_id)
            .order_by(HealthCondition.onset_at.desc())
            .all()
        )
        encounters = (
            db.query(HealthEncounter)
            .filter(HealthEncounter.patient_id == patient_id)
            .order_by(HealthEncounter.period_start.desc())
            .all()
        )

        medication_responses = []
        for med in medications:
            response = MedicationResponse.model_validate(med)
            if response.name is None:
                response = response.model_copy(
                    update={"name": recover_medication_name(med.raw_resource)}
                )
            medication_responses.append(response)

        return HealthDataResponse(
            observations=[ObservationResponse.model_validate(o) for o in observations],
            medications=medication_responses,
            conditions=[ConditionResponse.model_validate(c) for c in conditions],
            encounters=[EncounterResponse.model_validate(e) for e in encounters],
        )
