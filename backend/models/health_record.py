"""Clinical snapshot models - rows ingested from a Fasten EHI export.

Each row belongs to exactly one HealthConnection and denormalizes the owning
patient_id for direct per-patient queries. A connection's rows are replaced
wholesale on every successful ingest and never updated in place.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class HealthObservation(Base):
    """An imported FHIR Observation (vitals, labs, social history)."""

    __tablename__ = "health_observations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(36), ForeignKey("health_connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    patient_id = Column(String(36), nullable=False, index=True)
    fhir_id = Column(String, nullable=True)
    code = Column(String, nullable=True)  # e.g. LOINC "8302-2"
    display = Column(String, nullable=True)
    category = Column(String, nullable=True)  # e.g. "vital-signs"
    value = Column(Text, nullable=True)  # Rendered value, e.g. "180 cm"
    unit = Column(String, nullable=True)
    effective_at = Column(DateTime, nullable=True)
    raw_resource = Column(JSON, nullable=False)  # Verbatim source record
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    connection = relationship("HealthConnection", back_populates="observations")


class HealthMedication(Base):
    """An imported FHIR MedicationRequest or MedicationStatement."""

    __tablename__ = "health_medications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(36), ForeignKey("health_connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    patient_id = Column(String(36), nullable=False, index=True)
    fhir_id = Column(String, nullable=True)
    name = Column(String, nullable=True)
    dosage = Column(Text, nullable=True)
    status = Column(String, nullable=True)  # e.g. "active", "stopped"
    prescribed_at = Column(DateTime, nullable=True)
    raw_resource = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    connection = relationship("HealthConnection", back_populates="medications")


class HealthCondition(Base):
    """An imported FHIR Condition (problem list entry or diagnosis)."""

    __tablename__ = "health_conditions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(36), ForeignKey("health_connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    patient_id = Column(String(36), nullable=False, index=True)
    fhir_id = Column(String, nullable=True)
    code = Column(String, nullable=True)  # e.g. SNOMED / ICD-10 code
    display = Column(String, nullable=True)
    clinical_status = Column(String, nullable=True)  # e.g. "active", "resolved"
    onset_at = Column(DateTime, nullable=True)
    raw_resource = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    connection = relationship("HealthConnection", back_populates="conditions")


class HealthEncounter(Base):
    """An imported FHIR Encounter (visit, admission, telehealth session)."""

    __tablename__ = "health_encounters"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(36), ForeignKey("health_connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    patient_id = Column(String(36), nullable=False, index=True)
    fhir_id = Column(String, nullable=True)
    type = Column(String, nullable=True)
    reason_text = Column(Text, nullable=True)
    service_type = Column(String, nullable=True)
    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)
    raw_resource = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    connection = relationship("HealthConnection", back_populates="encounters")
