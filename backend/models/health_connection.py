"""HealthConnection model - a patient's link to an external health-record source."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class HealthConnection(Base):
    """One authorized link between a patient and a Fasten org connection.

    The combination of patient_id + org_connection_id is unique. The same
    org_connection_id may be linked by several patients; each link is its
    own row and receives its own copy of every ingested export.
    """

    __tablename__ = "health_connections"
    __table_args__ = (
        UniqueConstraint(
            "patient_id", "org_connection_id", name="uix_patient_org_connection"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    patient_id = Column(
        String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    org_connection_id = Column(String, nullable=False, index=True)  # Fasten-assigned, opaque
    source_name = Column(String(500), nullable=True)  # Display label, e.g. "Kaiser Permanente"
    connected_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    # Outcome of the most recent EHI export attempt
    last_synced_at = Column(DateTime, nullable=True)
    last_export_task_id = Column(String, nullable=True)
    last_export_failure_reason = Column(String(500), nullable=True)

    # Relationships
    patient = relationship("Patient", back_populates="health_connections")
    observations = relationship(
        "HealthObservation", back_populates="connection", cascade="all, delete-orphan"
    )
    medications = relationship(
        "HealthMedication", back_populates="connection", cascade="all, delete-orphan"
    )
    conditions = relationship(
        "HealthCondition", back_populates="connection", cascade="all, delete-orphan"
    )
    encounters = relationship(
        "HealthEncounter", back_populates="connection", cascade="all, delete-orphan"
    )
