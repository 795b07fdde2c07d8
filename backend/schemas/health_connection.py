"""Pydantic schemas for health connections and imported health data."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AddConnectionRequest(BaseModel):
    """Request body sent after the Fasten Connect redirect."""

    org_connection_id: str = Field(min_length=1)
    source_name: Optional[str] = Field(default=None, max_length=500)


class HealthConnectionResponse(BaseModel):
    """Schema for a single health connection."""

    id: str
    org_connection_id: str
    source_name: Optional[str] = None
    connected_at: datetime
    last_synced_at: Optional[datetime] = None
    last_export_task_id: Optional[str] = None
    last_export_failure_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class EhiExportResponse(BaseModel):
    """An EHI export task as acknowledged by Fasten."""

    task_id: str
    status: str


class AddConnectionResponse(HealthConnectionResponse):
    """Connection plus the export task triggered for it, when available."""

    ehi_export: Optional[EhiExportResponse] = None


class ConnectionStatusResponse(BaseModel):
    """Fasten's view of one org connection."""

    org_connection_id: str
    status: str
    org_id: Optional[str] = None
    platform_type: Optional[str] = None
    api_mode: Optional[str] = None
    scope: Optional[str] = None
    consent_expires_at: Optional[str] = None


class ConnectUrlResponse(BaseModel):
    """URL that starts the Fasten Connect flow (None if not configured)."""

    url: Optional[str] = None


class RemoveConnectionResponse(BaseModel):
    success: bool = True


class ObservationResponse(BaseModel):
    id: str
    connection_id: str
    fhir_id: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None
    category: Optional[str] = None
    value: Optional[str] = None
    unit: Optional[str] = None
    effective_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MedicationResponse(BaseModel):
    id: str
    connection_id: str
    fhir_id: Optional[str] = None
    name: Optional[str] = None
    dosage: Optional[str] = None
    status: Optional[str] = None
    prescribed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConditionResponse(BaseModel):
    id: str
    connection_id: str
    fhir_id: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None
    clinical_status: Optional[str] = None
    onset_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EncounterResponse(BaseModel):
    id: str
    connection_id: str
    fhir_id: Optional[str] = None
    type: Optional[str] = None
    reason_text: Optional[str] = None
    service_type: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HealthDataResponse(BaseModel):
    """All imported clinical data for one patient, across connections."""

    observations: list[ObservationResponse] = []
    medications: list[MedicationResponse] = []
    conditions: list[ConditionResponse] = []
    encounters: list[EncounterResponse] = []
