"""Typed views over the FHIR R4 resources found in an EHI export.

Only the elements the ingest extracts are modeled; everything else is
ignored here and preserved verbatim in each row's ``raw_resource``. Every
element is optional, since partner exports routinely omit them.

Validation is lenient: an element of the wrong shape is read as absent
(``None`` for objects and text, ``[]`` for arrays) instead of rejecting the
record, so a recognized resource is always kept.
"""

from enum import Enum
from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _text_or_none(value: Any) -> Optional[str]:
    """Treat non-string values where FHIR expects text as absent."""
    return value if isinstance(value, str) else None


def _object_or_none(value: Any) -> Optional[dict]:
    return value if isinstance(value, dict) else None


def _object_list(value: Any) -> list:
    """Arrays of elements; non-object entries keep their position as empty elements."""
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, dict) else {} for item in value]


def _scalar_or_none(value: Any) -> Union[int, float, str, None]:
    """Quantity values as sent: numbers, or strings such as ``"<5"``."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return value
    return None


FhirText = Annotated[Optional[str], BeforeValidator(_text_or_none)]
FhirScalar = Annotated[Union[int, float, str, None], BeforeValidator(_scalar_or_none)]


def Element(model: type) -> Any:
    """Optional single element; a non-object value reads as absent."""
    return Annotated[Optional[model], BeforeValidator(_object_or_none)]


def ElementList(model: type) -> Any:
    """Repeated element; a non-array value reads as empty."""
    return Annotated[list[model], BeforeValidator(_object_list)]


class FhirElement(BaseModel):
    """Base for FHIR datatypes: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class Coding(FhirElement):
    system: FhirText = None
    code: FhirText = None
    display: FhirText = None


class CodeableConcept(FhirElement):
    coding: ElementList(Coding) = Field(default_factory=list)
    text: FhirText = None

    def first_coding(self) -> Optional[Coding]:
        return self.coding[0] if self.coding else None


class Quantity(FhirElement):
    value: FhirScalar = None
    unit: FhirText = None


class Period(FhirElement):
    start: FhirText = None
    end: FhirText = None


class Reference(FhirElement):
    reference: FhirText = None
    display: FhirText = None


class DoseAndRate(FhirElement):
    dose_quantity: Element(Quantity) = Field(default=None, alias="doseQuantity")
    rate_quantity: Element(Quantity) = Field(default=None, alias="rateQuantity")


class Dosage(FhirElement):
    text: FhirText = None
    dose_and_rate: ElementList(DoseAndRate) = Field(default_factory=list, alias="doseAndRate")


class FhirResource(FhirElement):
    resource_type: str = Field(alias="resourceType")
    id: FhirText = None


class ObservationResource(FhirResource):
    code: Element(CodeableConcept) = None
    category: ElementList(CodeableConcept) = Field(default_factory=list)
    value_quantity: Element(Quantity) = Field(default=None, alias="valueQuantity")
    value_string: FhirText = Field(default=None, alias="valueString")
    value_codeable_concept: Element(CodeableConcept) = Field(
        default=None, alias="valueCodeableConcept"
    )
    effective_date_time: FhirText = Field(default=None, alias="effectiveDateTime")
    effective_period: Element(Period) = Field(default=None, alias="effectivePeriod")


class MedicationResource(FhirResource):
    """MedicationRequest or MedicationStatement."""

    medication_codeable_concept: Element(CodeableConcept) = Field(
        default=None, alias="medicationCodeableConcept"
    )
    medication_reference: Element(Reference) = Field(default=None, alias="medicationReference")
    dosage_instruction: ElementList(Dosage) = Field(default_factory=list, alias="dosageInstruction")
    status: FhirText = None
    authored_on: FhirText = Field(default=None, alias="authoredOn")
    effective_date_time: FhirText = Field(default=None, alias="effectiveDateTime")


class ConditionResource(FhirResource):
    code: Element(CodeableConcept) = None
    clinical_status: Element(CodeableConcept) = Field(default=None, alias="clinicalStatus")
    onset_date_time: FhirText = Field(default=None, alias="onsetDateTime")


class EncounterResource(FhirResource):
    type: ElementList(CodeableConcept) = Field(default_factory=list)
    reason_code: ElementList(CodeableConcept) = Field(default_factory=list, alias="reasonCode")
    service_type: Element(CodeableConcept) = Field(default=None, alias="serviceType")
    period: Element(Period) = None


class ResourceKind(str, Enum):
    """Snapshot row kinds the ingest stores."""

    OBSERVATION = "observation"
    MEDICATION = "medication"
    CONDITION = "condition"
    ENCOUNTER = "encounter"


ClinicalResource = Union[
    ObservationResource, MedicationResource, ConditionResource, EncounterResource
]

RESOURCE_TYPE_KINDS: dict[str, ResourceKind] = {
    "Observation": ResourceKind.OBSERVATION,
    "MedicationRequest": ResourceKind.MEDICATION,
    "MedicationStatement": ResourceKind.MEDICATION,
    "Condition": ResourceKind.CONDITION,
    "Encounter": ResourceKind.ENCOUNTER,
}

_KIND_MODELS: dict[ResourceKind, type[FhirResource]] = {
    ResourceKind.OBSERVATION: ObservationResource,
    ResourceKind.MEDICATION: MedicationResource,
    ResourceKind.CONDITION: ConditionResource,
    ResourceKind.ENCOUNTER: EncounterResource,
}


def resource_kind(record: dict) -> Optional[ResourceKind]:
    """Return the snapshot kind for a raw record, or None if not ingested."""
    resource_type = record.get("resourceType")
    if not isinstance(resource_type, str):
        return None
    return RESOURCE_TYPE_KINDS.get(resource_type)


def parse_resource(record: dict) -> Optional[ClinicalResource]:
    """Validate a raw record into its typed resource model.

    Returns:
        The typed resource, or None for resource types the ingest does not
        store (Patient, Practitioner, DocumentReference, ...). Elements of
        the wrong shape read as absent rather than failing validation.
    """
    kind = resource_kind(record)
    if kind is None:
        return None
    return _KIND_MODELS[kind].model_validate(record)
