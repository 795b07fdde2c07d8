"""Tests for PatientAccessPolicy."""

from datetime import datetime, timezone

import pytest

from services.access_control import Actor, ActorRole, PatientAccessPolicy
from services.exceptions import AccessDeniedError, NotFoundError
from tests.fixtures import create_patient


@pytest.fixture
def policy() -> PatientAccessPolicy:
    return PatientAccessPolicy()


class TestGetPatientForActor:
    def test_returns_own_patient(self, db, policy, patient, patient_actor):
        assert policy.get_patient_for_actor(db, patient_actor).id == patient.id

    def test_non_patient_denied(self, db, policy, patient, provider_actor):
        with pytest.raises(AccessDeniedError):
            policy.get_patient_for_actor(db, provider_actor)

    def test_missing_patient_record(self, db, policy):
        with pytest.raises(NotFoundError):
            policy.get_patient_for_actor(db, Actor(user_id="nobody", role=ActorRole.PATIENT))

    def test_soft_deleted_patient_not_found(self, db, policy, patient, patient_actor):
        patient.deleted_at = datetime.now(timezone.utc)
        db.commit()
        with pytest.raises(NotFoundError):
            policy.get_patient_for_actor(db, patient_actor)


class TestEnsureCanAccessPatient:
    def test_patient_can_access_self(self, db, policy, patient, patient_actor):
        assert policy.ensure_can_access_patient(db, patient.id, patient_actor).id == patient.id

    def test_patient_cannot_access_other_patient(self, db, policy, patient_actor):
        other = create_patient(db, "someone-else")
        with pytest.raises(AccessDeniedError):
            policy.ensure_can_access_patient(db, other.id, patient_actor)

    def test_assigned_provider_allowed(self, db, policy, patient, provider_actor, provider_assignment):
        assert policy.can_access_patient(db, patient.id, provider_actor) is True

    def test_unassigned_provider_denied(self, db, policy, patient, provider_actor):
        with pytest.raises(AccessDeniedError, match="assigned"):
            policy.ensure_can_access_patient(db, patient.id, provider_actor)

    def test_provider_assignment_is_per_patient(self, db, policy, provider_actor, provider_assignment):
        other = create_patient(db, "someone-else")
        assert policy.can_access_patient(db, other.id, provider_actor) is False

    def test_administrator_allowed(self, db, policy, patient, admin_actor):
        assert policy.can_access_patient(db, patient.id, admin_actor) is True

    def test_unknown_patient_not_found(self, db, policy, admin_actor):
        with pytest.raises(NotFoundError):
            policy.ensure_can_access_patient(db, "missing-id", admin_actor)
