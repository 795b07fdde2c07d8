"""Row-level access control for patient health connections.

Who may act on whose connections:
- patient: only their own patient record
- provider: only patients currently assigned to them
- administrator: any patient

The health-connection service depends on the :class:`AccessPolicy` protocol
only; :class:`PatientAccessPolicy` is the default implementation backed by
the ``patients`` and ``patient_providers`` tables.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from sqlalchemy.orm import Session

from models import Patient, PatientProvider
from services.exceptions import AccessDeniedError, NotFoundError


class ActorRole(str, Enum):
    """Portal roles."""

    PATIENT = "patient"
    PROVIDER = "provider"
    ADMINISTRATOR = "administrator"


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation."""

    user_id: str
    role: ActorRole


class AccessPolicy(Protocol):
    """Authorization collaborator used by HealthConnectionService."""

    def get_patient_for_actor(self, db: Session, actor: Actor) -> Patient:
        """Resolve the acting patient's own record."""
        ...

    def ensure_can_access_patient(self, db: Session, patient_id: str, actor: Actor) -> Patient:
        """Return the patient if the actor may access it, else raise."""
        ...


class PatientAccessPolicy:
    """Default AccessPolicy over the Patient/PatientProvider tables."""

    @staticmethod
    def _find_patient(db: Session, patient_id: str) -> Patient | None:
        return (
            db.query(Patient)
            .filter(Patient.id == patient_id, Patient.deleted_at.is_(None))
            .first()
        )

    def get_patient_for_actor(self, db: Session, actor: Actor) -> Patient:
        """Resolve the patient record owned by the acting user.

        Raises:
            AccessDeniedError: The actor is not a patient.
            NotFoundError: No (non-deleted) patient record for this user.
        """
        if actor.role != ActorRole.PATIENT:
            raise AccessDeniedError("Only patients can access their health connections")
        patient = (
            db.query(Patient)
            .filter(Patient.user_id == actor.user_id, Patient.deleted_at.is_(None))
            .first()
        )
        if patient is None:
            raise NotFoundError("Patient record not found")
        return patient

    def can_access_patient(self, db: Session, patient_id: str, actor: Actor) -> bool:
        """Return True if the actor may access the patient.

        Raises:
            NotFoundError: The patient does not exist or was deleted.
        """
        patient = self._find_patient(db, patient_id)
        if patient is None:
            raise NotFoundError("Patient not found")
        if actor.role == ActorRole.ADMINISTRATOR:
            return True
        if actor.role == ActorRole.PATIENT:
            return patient.user_id == actor.user_id
        if actor.role == ActorRole.PROVIDER:
            assignment = (
                db.query(PatientProvider)
                .filter_by(patient_id=patient_id, provider_id=actor.user_id)
                .first()
            )
            return assignment is not None
        return False

    def ensure_can_access_patient(self, db: Session, patient_id: str, actor: Actor) -> Patient:
        """Return the patient, raising unless the actor may access it.

        Raises:
            NotFoundError: The patient does not exist or was deleted.
            AccessDeniedError: The actor may not access this patient.
        """
        if not self.can_access_patient(db, patient_id, actor):
            if actor.role == ActorRole.PROVIDER:
                raise AccessDeniedError(
                    "You can only access health connections of assigned patients"
                )
            raise AccessDeniedError("You can only access your own health connections")
        return self._find_patient(db, patient_id)
