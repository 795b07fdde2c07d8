"""SQLAlchemy ORM models."""

from .health_connection import HealthConnection
from .health_record import HealthCondition, HealthEncounter, HealthMedication, HealthObservation
from .patient import Patient, PatientProvider
from .utils import generate_uuid

__all__ = ["HealthCondition", "HealthConnection", "HealthEncounter", "HealthMedication", "HealthObservation", "Patient", "PatientProvider", "generate_uuid"]
