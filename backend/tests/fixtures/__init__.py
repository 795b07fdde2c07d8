"""Test fixtures and sample data."""
import pytest
from sqlalchemy.orm import Session

from models import HealthConnection, Patient, PatientProvider
from services.access_control import Actor, ActorRole

PATIENT_USER_ID = "user-patient-1"
PROVIDER_USER_ID = "user-provider-1"
ADMIN_USER_ID = "user-admin-1"


def create_patient(db: Session, user_id: str) -> Patient:
    """Create a patient record owned by the given portal user.

    This is a helper function (not a fixture) for tests that need more than
    one patient.
    """
    patient = Patient(user_id=user_id)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


def create_connection(
    db: Session,
    patient: Patient,
    org_connection_id: str,
    source_name: str | None = None,
) -> HealthConnection:
    """Create a health connection for a patient."""
    connection = HealthConnection(
        patient_id=patient.id,
        org_connection_id=org_connection_id,
        source_name=source_name,
    )
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


def actor_headers(actor: Actor) -> dict[str, str]:
    """Identity headers for an actor, as set by the upstream auth layer."""
    return {"X-User-Id": actor.user_id, "X-User-Role": actor.role.value}


@pytest.fixture
def patient(db: Session) -> Patient:
    """Create a test patient."""
    return create_patient(db, PATIENT_USER_ID)


@pytest.fixture
def patient_actor() -> Actor:
    return Actor(user_id=PATIENT_USER_ID, role=ActorRole.PATIENT)


@pytest.fixture
def provider_actor() -> Actor:
    return Actor(user_id=PROVIDER_USER_ID, role=ActorRole.PROVIDER)


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(user_id=ADMIN_USER_ID, role=ActorRole.ADMINISTRATOR)


@pytest.fixture
def provider_assignment(db: Session, patient: Patient) -> PatientProvider:
    """Assign the test provider to the test patient."""
    assignment = PatientProvider(patient_id=patient.id, provider_id=PROVIDER_USER_ID)
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    return assignment


@pytest.fixture
def connection(db: Session, patient: Patient) -> HealthConnection:
    """Create a test health connection."""
    return create_connection(db, patient, "org_conn_1", source_name="Test Health System")
