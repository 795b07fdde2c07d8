"""Tests for FHIR resource models and field extraction."""

from datetime import datetime, timezone

from integrations.fhir_resources import (
    ConditionResource,
    EncounterResource,
    MedicationResource,
    ObservationResource,
    ResourceKind,
    parse_resource,
    resource_kind,
)
from services.fhir_extractors import (
    extract_condition,
    extract_encounter,
    extract_medication,
    extract_observation,
    medication_dosage,
    medication_name,
    observation_category,
    observation_code,
    observation_display,
    observation_value,
    recover_medication_name,
)


def _obs(**fields) -> ObservationResource:
    return ObservationResource.model_validate({"resourceType": "Observation", **fields})


def _med(**fields) -> MedicationResource:
    return MedicationResource.model_validate({"resourceType": "MedicationRequest", **fields})


class TestParseResource:
    def test_routes_recognized_types(self):
        assert isinstance(parse_resource({"resourceType": "Observation"}), ObservationResource)
        assert isinstance(parse_resource({"resourceType": "MedicationStatement"}), MedicationResource)
        assert isinstance(parse_resource({"resourceType": "Condition"}), ConditionResource)
        assert isinstance(parse_resource({"resourceType": "Encounter"}), EncounterResource)

    def test_other_types_return_none(self):
        assert parse_resource({"resourceType": "Patient", "id": "p1"}) is None
        assert parse_resource({"id": "no-type"}) is None

    def test_resource_kind(self):
        assert resource_kind({"resourceType": "MedicationRequest"}) == ResourceKind.MEDICATION
        assert resource_kind({"resourceType": "Practitioner"}) is None

    def test_wrongly_shaped_elements_read_as_absent(self):
        obs = parse_resource(
            {
                "resourceType": "Observation",
                "category": "vital-signs",
                "code": {"coding": None, "text": "Weight"},
                "valueQuantity": ["72", "kg"],
                "effectivePeriod": "2024",
            }
        )
        assert obs.category == []
        assert obs.code.coding == []
        assert obs.code.text == "Weight"
        assert obs.value_quantity is None
        assert obs.effective_period is None

    def test_non_object_coding_entries_keep_position(self):
        obs = parse_resource(
            {"resourceType": "Observation", "code": {"coding": ["8480-6", {"code": "x"}]}}
        )
        assert len(obs.code.coding) == 2
        assert obs.code.coding[0].code is None
        assert observation_code(obs) is None

    def test_non_string_resource_type_is_ignored(self):
        assert resource_kind({"resourceType": ["Observation"]}) is None
        assert parse_resource({"resourceType": 7}) is None

    def test_non_string_text_treated_as_absent(self):
        obs = parse_resource({"resourceType": "Observation", "code": {"text": 42}})
        assert obs.code.text is None


class TestObservationExtraction:
    def test_end_to_end_example(self):
        fields = extract_observation(
            _obs(
                id="o1",
                code={"coding": [{"code": "8480-6", "display": "Systolic BP"}]},
                valueQuantity={"value": 120, "unit": "mmHg"},
                effectiveDateTime="2024-06-01T10:00:00Z",
            )
        )
        assert fields.fhir_id == "o1"
        assert fields.code == "8480-6"
        assert fields.display == "Systolic BP"
        assert fields.value == "120 mmHg"
        assert fields.unit == "mmHg"
        assert fields.effective_at == datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)

    def test_code_and_display_fall_back_to_text(self):
        obs = _obs(code={"text": "Heart rate"})
        assert observation_code(obs) == "Heart rate"
        assert observation_display(obs) == "Heart rate"

    def test_category_precedence(self):
        assert observation_category(
            _obs(category=[{"coding": [{"code": "vital-signs", "display": "Vital Signs"}]}])
        ) == "vital-signs"
        assert observation_category(
            _obs(category=[{"coding": [{"display": "Laboratory"}]}])
        ) == "Laboratory"
        assert observation_category(_obs(category=[{"text": "Social"}])) == "Social"
        assert observation_category(_obs()) is None

    def test_integral_quantity_rendered_without_fraction(self):
        assert observation_value(_obs(valueQuantity={"value": 180.0, "unit": "cm"})) == ("180 cm", "cm")

    def test_non_numeric_quantity_value_rendered_as_sent(self):
        assert observation_value(_obs(valueQuantity={"value": "<5", "unit": "mg"})) == ("<5 mg", "mg")
        assert observation_value(_obs(valueQuantity={"value": "12.50"})) == ("12.50", None)

    def test_non_scalar_quantity_value_reads_as_absent(self):
        assert observation_value(
            _obs(valueQuantity={"value": {"approx": 5}, "unit": "mg"}, valueString="five")
        ) == (None, "mg")

    def test_quantity_without_unit(self):
        assert observation_value(_obs(valueQuantity={"value": 7.5})) == ("7.5", None)

    def test_string_value(self):
        assert observation_value(_obs(valueString="Positive")) == ("Positive", None)

    def test_codeable_concept_value(self):
        assert observation_value(_obs(valueCodeableConcept={"text": "Negative"})) == ("Negative", None)

    def test_no_value(self):
        assert observation_value(_obs()) == (None, None)

    def test_quantity_wins_over_string(self):
        value, _ = observation_value(
            _obs(valueQuantity={"value": 5, "unit": "mg"}, valueString="five")
        )
        assert value == "5 mg"

    def test_effective_period_start_fallback(self):
        fields = extract_observation(_obs(effectivePeriod={"start": "2024-03-01"}))
        assert fields.effective_at == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_unparseable_date_is_none(self):
        assert extract_observation(_obs(effectiveDateTime="soon")).effective_at is None


class TestMedicationExtraction:
    def test_name_precedence(self):
        assert medication_name(
            _med(medicationCodeableConcept={"text": "Lisinopril", "coding": [{"display": "LISINOPRIL 10MG"}]})
        ) == "Lisinopril"
        assert medication_name(
            _med(medicationCodeableConcept={"coding": [{"display": "Metformin 500 MG"}]})
        ) == "Metformin 500 MG"
        assert medication_name(_med(medicationReference={"display": "Atorvastatin"})) == "Atorvastatin"
        assert medication_name(_med()) is None

    def test_dosage_text_wins(self):
        assert medication_dosage(_med(dosageInstruction=[{"text": "Take one tablet daily"}])) == (
            "Take one tablet daily"
        )

    def test_dosage_from_dose_and_rate(self):
        med = _med(
            dosageInstruction=[
                {
                    "doseAndRate": [
                        {
                            "doseQuantity": {"value": 10, "unit": "mg"},
                            "rateQuantity": {"value": 2, "unit": "tablets"},
                        }
                    ]
                }
            ]
        )
        assert medication_dosage(med) == "10 mg, 2 tablets/day"

    def test_dosage_dose_only(self):
        med = _med(dosageInstruction=[{"doseAndRate": [{"doseQuantity": {"value": 0.5, "unit": "mg"}}]}])
        assert medication_dosage(med) == "0.5 mg"

    def test_dosage_with_string_dose_value(self):
        med = _med(
            dosageInstruction=[
                {"doseAndRate": [{"doseQuantity": {"value": "1-2", "unit": "tablets"}, "rateQuantity": "x"}]}
            ]
        )
        assert medication_dosage(med) == "1-2 tablets"

    def test_no_dosage(self):
        assert medication_dosage(_med()) is None
        assert medication_dosage(_med(dosageInstruction=[{}])) is None

    def test_statement_uses_effective_date(self):
        fields = extract_medication(
            MedicationResource.model_validate(
                {"resourceType": "MedicationStatement", "status": "completed", "effectiveDateTime": "2023-11-02"}
            )
        )
        assert fields.status == "completed"
        assert fields.prescribed_at == datetime(2023, 11, 2, tzinfo=timezone.utc)

    def test_request_prefers_authored_on(self):
        fields = extract_medication(_med(authoredOn="2024-05-20", effectiveDateTime="2020-01-01"))
        assert fields.prescribed_at == datetime(2024, 5, 20, tzinfo=timezone.utc)


class TestRecoverMedicationName:
    def test_recovers_from_raw(self):
        raw = {"resourceType": "MedicationRequest", "medicationReference": {"display": "Warfarin"}}
        assert recover_medication_name(raw) == "Warfarin"

    def test_invalid_raw_returns_none(self):
        assert recover_medication_name(None) is None
        assert recover_medication_name({"resourceType": "MedicationRequest", "medicationReference": "Warfarin"}) is None


class TestConditionExtraction:
    def test_fields(self):
        fields = extract_condition(
            ConditionResource.model_validate(
                {
                    "resourceType": "Condition",
                    "id": "c1",
                    "code": {"text": "Hypertension", "coding": [{"code": "38341003", "display": "HTN"}]},
                    "clinicalStatus": {"coding": [{"code": "active"}]},
                    "onsetDateTime": "2020-01-15",
                }
            )
        )
        assert fields.code == "38341003"
        assert fields.display == "Hypertension"
        assert fields.clinical_status == "active"
        assert fields.onset_at == datetime(2020, 1, 15, tzinfo=timezone.utc)

    def test_display_falls_back_to_coding(self):
        fields = extract_condition(
            ConditionResource.model_validate(
                {"resourceType": "Condition", "code": {"coding": [{"display": "Asthma"}]}}
            )
        )
        assert fields.display == "Asthma"
        assert fields.code is None


class TestEncounterExtraction:
    def test_fields(self):
        fields = extract_encounter(
            EncounterResource.model_validate(
                {
                    "resourceType": "Encounter",
                    "id": "e1",
                    "type": [{"coding": [{"display": "Office visit"}]}],
                    "reasonCode": [{"text": "Follow-up"}],
                    "serviceType": {"text": "Cardiology"},
                    "period": {"start": "2024-06-01T09:30:00Z", "end": "2024-06-01T10:15:00Z"},
                }
            )
        )
        assert fields.type == "Office visit"
        assert fields.reason_text == "Follow-up"
        assert fields.service_type == "Cardiology"
        assert fields.period_start == datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)
        assert fields.period_end == datetime(2024, 6, 1, 10, 15, tzinfo=timezone.utc)

    def test_empty_encounter(self):
        fields = extract_encounter(EncounterResource.model_validate({"resourceType": "Encounter"}))
        assert fields.type is None
        assert fields.period_start is None
