"""Patient and PatientProvider models - the access-control view of patients.

Only the columns the health-connection access checks need live here; the
full patient profile is owned by the portal's patient CRUD layer.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Patient(Base):
    """A patient record, linked to the portal user who owns it."""

    __tablename__ = "patients"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    deleted_at = Column(DateTime, nullable=True)  # Soft delete
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    patient_providers = relationship(
        "PatientProvider", back_populates="patient", cascade="all, delete-orphan"
    )
    health_connections = relationship(
        "HealthConnection", back_populates="patient", cascade="all, delete-orphan"
    )


class PatientProvider(Base):
    """Assignment of a provider (portal user) to a patient."""

    __tablename__ = "patient_providers"
    __table_args__ = (
        UniqueConstraint("patient_id", "provider_id", name="uix_patient_provider"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    patient_id = Column(
        String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider_id = Column(String(36), nullable=False, index=True)
    assigned_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    patient = relationship("Patient", back_populates="patient_providers")
