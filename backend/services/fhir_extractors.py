"""Pure field extraction from typed FHIR resources.

Each function maps one modeled element to a scalar, applying a fixed
fallback order, and returns None when nothing in the chain is present.
No I/O and no database access: the ingest service builds rows from these
results, and read paths reuse them against stored ``raw_resource`` JSON.

"Present" follows the source JSON: an element that exists but is empty
(``""``) still wins over later fallbacks unless noted otherwise.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TypeVar

from pydantic import ValidationError

from integrations.fhir_resources import (
    CodeableConcept,
    ConditionResource,
    EncounterResource,
    MedicationResource,
    ObservationResource,
    Quantity,
)
from integrations.parsing_utils import format_number, parse_iso_datetime

T = TypeVar("T")


def first_present(*values: Optional[T]) -> Optional[T]:
    """Return the first value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def _first(items: list[T]) -> Optional[T]:
    return items[0] if items else None


def concept_text_or_display(concept: Optional[CodeableConcept]) -> Optional[str]:
    """Structured text, else the first coding's display."""
    if concept is None:
        return None
    coding = concept.first_coding()
    return first_present(concept.text, coding.display if coding else None)


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return parse_iso_datetime(value)


def _quantity_text(quantity: Quantity, suffix: str = "") -> Optional[str]:
    """Render ``"<value> <unit><suffix>"``, or None when there is no value."""
    if quantity.value is None:
        return None
    return f"{format_number(quantity.value)} {quantity.unit or ''}{suffix}".strip()


# ---------------------------------------------------------------------------
# Observation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ObservationFields:
    fhir_id: Optional[str]
    code: Optional[str]
    display: Optional[str]
    category: Optional[str]
    value: Optional[str]
    unit: Optional[str]
    effective_at: Optional[datetime]


def observation_code(obs: ObservationResource) -> Optional[str]:
    """First coding's code, else the code's text."""
    if obs.code is None:
        return None
    coding = obs.code.first_coding()
    return first_present(coding.code if coding else None, obs.code.text)


def observation_display(obs: ObservationResource) -> Optional[str]:
    """First coding's display, else the code's text."""
    if obs.code is None:
        return None
    coding = obs.code.first_coding()
    return first_present(coding.display if coding else None, obs.code.text)


def observation_category(obs: ObservationResource) -> Optional[str]:
    """First category's first coding code, else its display, else its text."""
    category = _first(obs.category)
    if category is None:
        return None
    coding = category.first_coding()
    return first_present(
        coding.code if coding else None,
        coding.display if coding else None,
        category.text,
    )


def observation_value(obs: ObservationResource) -> tuple[Optional[str], Optional[str]]:
    """Return ``(value, unit)``.

    A quantity, when present, decides the result on its own, even if it has
    no numeric value. Otherwise a plain string value, else a coded
    concept's (non-empty) text.
    """
    if obs.value_quantity is not None:
        return _quantity_text(obs.value_quantity), obs.value_quantity.unit or None
    if obs.value_string is not None:
        return obs.value_string, None
    if obs.value_codeable_concept is not None and obs.value_codeable_concept.text:
        return obs.value_codeable_concept.text, None
    return None, None


def observation_effective_at(obs: ObservationResource) -> Optional[datetime]:
    """Point-in-time ``effectiveDateTime``, else the start of ``effectivePeriod``."""
    return _parse_date(
        first_present(
            obs.effective_date_time,
            obs.effective_period.start if obs.effective_period else None,
        )
    )


def extract_observation(obs: ObservationResource) -> ObservationFields:
    value, unit = observation_value(obs)
    return ObservationFields(
        fhir_id=obs.id,
        code=observation_code(obs),
        display=observation_display(obs),
        category=observation_category(obs),
        value=value,
        unit=unit,
        effective_at=observation_effective_at(obs),
    )


# ---------------------------------------------------------------------------
# Medication (MedicationRequest / MedicationStatement)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MedicationFields:
    fhir_id: Optional[str]
    name: Optional[str]
    dosage: Optional[str]
    status: Optional[str]
    prescribed_at: Optional[datetime]


def medication_name(med: MedicationResource) -> Optional[str]:
    """Coded concept text, else its first coding's display, else the reference display."""
    concept = med.medication_codeable_concept
    coding = concept.first_coding() if concept else None
    return first_present(
        concept.text if concept else None,
        coding.display if coding else None,
        med.medication_reference.display if med.medication_reference else None,
    )


def medication_dosage(med: MedicationResource) -> Optional[str]:
    """Free-text instruction, else ``"<dose> <unit>, <rate> <unit>/day"``.

    Only the first dosage instruction and its first dose-and-rate entry are
    considered.
    """
    instruction = _first(med.dosage_instruction)
    if instruction is None:
        return None
    if instruction.text:
        return instruction.text
    dose_and_rate = _first(instruction.dose_and_rate)
    if dose_and_rate is None:
        return None
    parts = []
    if dose_and_rate.dose_quantity is not None:
        dose = _quantity_text(dose_and_rate.dose_quantity)
        if dose is not None:
            parts.append(dose)
    if dose_and_rate.rate_quantity is not None:
        rate = _quantity_text(dose_and_rate.rate_quantity, suffix="/day")
        if rate is not None:
            parts.append(rate)
    return ", ".join(parts) if parts else None


def medication_prescribed_at(med: MedicationResource) -> Optional[datetime]:
    """``authoredOn`` (requests), else ``effectiveDateTime`` (statements)."""
    return _parse_date(first_present(med.authored_on, med.effective_date_time))


def extract_medication(med: MedicationResource) -> MedicationFields:
    return MedicationFields(
        fhir_id=med.id,
        name=medication_name(med),
        dosage=medication_dosage(med),
        status=med.status,
        prescribed_at=medication_prescribed_at(med),
    )


def recover_medication_name(raw_resource: Optional[dict]) -> Optional[str]:
    """Re-derive a medication name from a stored raw record.

    Used at read time for rows whose name was not extracted at ingest.
    """
    if not isinstance(raw_resource, dict):
        return None
    try:
        med = MedicationResource.model_validate(raw_resource)
    except ValidationError:
        return None
    return medication_name(med)


# ---------------------------------------------------------------------------
# Condition
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConditionFields:
    fhir_id: Optional[str]
    code: Optional[str]
    display: Optional[str]
    clinical_status: Optional[str]
    onset_at: Optional[datetime]


def condition_code(cond: ConditionResource) -> Optional[str]:
    coding = cond.code.first_coding() if cond.code else None
    return coding.code if coding else None


def condition_clinical_status(cond: ConditionResource) -> Optional[str]:
    coding = cond.clinical_status.first_coding() if cond.clinical_status else None
    return coding.code if coding else None


def extract_condition(cond: ConditionResource) -> ConditionFields:
    return ConditionFields(
        fhir_id=cond.id,
        code=condition_code(cond),
        display=concept_text_or_display(cond.code),
        clinical_status=condition_clinical_status(cond),
        onset_at=_parse_date(cond.onset_date_time),
    )


# ---------------------------------------------------------------------------
# Encounter
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EncounterFields:
    fhir_id: Optional[str]
    type: Optional[str]
    reason_text: Optional[str]
    service_type: Optional[str]
    period_start: Optional[datetime]
    period_end: Optional[datetime]


def extract_encounter(enc: EncounterResource) -> EncounterFields:
    return EncounterFields(
        fhir_id=enc.id,
        type=concept_text_or_display(_first(enc.type)),
        reason_text=concept_text_or_display(_first(enc.reason_code)),
        service_type=concept_text_or_display(enc.service_type),
        period_start=_parse_date(enc.period.start if enc.period else None),
        period_end=_parse_date(enc.period.end if enc.period else None),
    )
