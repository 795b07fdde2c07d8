"""EHI ingest service - parses a Fasten NDJSON export and replaces a snapshot.

An export is one FHIR resource per line. Observations, medications
(MedicationRequest/MedicationStatement), conditions and encounters are
extracted into rows; other resource types are dropped. Malformed lines are
skipped individually so a partly broken third-party feed still imports.

Persisting is a full replacement: all existing rows of the four kinds for
the connection are deleted and the new rows inserted in one transaction,
so readers see either the previous snapshot or the new one, never a mix.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, insert, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from integrations.fhir_resources import (
    ConditionResource,
    EncounterResource,
    MedicationResource,
    ObservationResource,
    parse_resource,
)
from integrations.parsing_utils import to_naive_utc
from models import HealthCondition, HealthEncounter, HealthMedication, HealthObservation
from models.utils import generate_uuid
from services.exceptions import IngestTransactionError, ResourceParseError
from services.fhir_extractors import (
    ConditionFields,
    EncounterFields,
    MedicationFields,
    ObservationFields,
    extract_condition,
    extract_encounter,
    extract_medication,
    extract_observation,
)

logger = logging.getLogger(__name__)

# Deleted (and inserted) in this order on every replace
SNAPSHOT_MODELS = (HealthObservation, HealthMedication, HealthCondition, HealthEncounter)


@dataclass
class ParsedExport:
    """Extracted fields plus the verbatim record, grouped by snapshot kind."""

    observations: list[tuple[ObservationFields, dict]] = field(default_factory=list)
    medications: list[tuple[MedicationFields, dict]] = field(default_factory=list)
    conditions: list[tuple[ConditionFields, dict]] = field(default_factory=list)
    encounters: list[tuple[EncounterFields, dict]] = field(default_factory=list)
    lines_read: int = 0
    lines_skipped: int = 0  # Malformed lines
    resources_ignored: int = 0  # Well-formed, but not a stored kind


@dataclass
class IngestCounts:
    """Per-kind row counts written by one ingest."""

    observations: int = 0
    medications: int = 0
    conditions: int = 0
    encounters: int = 0

    @property
    def total(self) -> int:
        return self.observations + self.medications + self.conditions + self.encounters


def _chunks(rows: list[dict], size: int) -> Iterator[list[dict]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class EhiIngestService:
    """Service for ingesting EHI export files into the clinical snapshot tables."""

    def __init__(
        self,
        batch_size: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize with optional tuning overrides.

        Args:
            batch_size: Rows per multi-row INSERT (defaults to
                        settings.EHI_INGEST_BATCH_SIZE).
            timeout_seconds: Upper bound for the replace transaction
                             (defaults to settings.EHI_INGEST_TIMEOUT_SECONDS).
        """
        self._batch_size = batch_size or settings.EHI_INGEST_BATCH_SIZE
        self._timeout_seconds = timeout_seconds or settings.EHI_INGEST_TIMEOUT_SECONDS

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _decode_line(line: str, line_number: int):
        """Decode one NDJSON line into ``(record, typed_resource_or_None)``.

        Raises:
            ResourceParseError: The line is not a JSON object.
        """
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ResourceParseError(f"invalid JSON ({exc.msg})", line_number) from exc
        except RecursionError as exc:
            raise ResourceParseError("JSON nested too deeply", line_number) from exc
        if not isinstance(record, dict):
            raise ResourceParseError("line is not a JSON object", line_number)
        try:
            return record, parse_resource(record)
        except PydanticValidationError as exc:
            raise ResourceParseError(
                f"malformed {record.get('resourceType')} ({exc.error_count()} errors)",
                line_number,
            ) from exc

    @staticmethod
    def _extract(resource) -> tuple[Optional[str], Any]:
        """Return ``(ParsedExport list name, extracted fields)``, or ``(None, None)``."""
        if isinstance(resource, ObservationResource):
            return "observations", extract_observation(resource)
        if isinstance(resource, MedicationResource):
            return "medications", extract_medication(resource)
        if isinstance(resource, ConditionResource):
            return "conditions", extract_condition(resource)
        if isinstance(resource, EncounterResource):
            return "encounters", extract_encounter(resource)
        return None, None

    def _read_line(self, line: str, line_number: int):
        """Decode and extract one line into ``(kind, fields, record)``.

        Raises:
            ResourceParseError: Decoding or field extraction failed.
        """
        record, resource = self._decode_line(line, line_number)
        try:
            kind, fields = self._extract(resource)
        except Exception as exc:
            raise ResourceParseError(
                f"could not extract {resource.resource_type} ({exc.__class__.__name__}: {exc})",
                line_number,
            ) from exc
        return kind, fields, record

    def parse_ndjson(self, ndjson_text: str) -> ParsedExport:
        """Parse an NDJSON export into extracted fields per snapshot kind.

        Blank lines are ignored; malformed lines are counted and skipped.
        """
        parsed = ParsedExport()
        for line_number, line in enumerate(ndjson_text.split("\n"), start=1):
            stripped = line.strip()
            if not stripped:
                continue
            parsed.lines_read += 1
            try:
                kind, fields, record = self._read_line(stripped, line_number)
            except ResourceParseError as exc:
                parsed.lines_skipped += 1
                logger.debug("Skipping EHI export line %d: %s", exc.line_number, exc)
                continue

            if kind is None:
                parsed.resources_ignored += 1
            else:
                getattr(parsed, kind).append((fields, record))

        if parsed.lines_skipped:
            logger.warning(
                "EHI export: skipped %d malformed line(s) of %d",
                parsed.lines_skipped, parsed.lines_read,
            )
        return parsed

    # ------------------------------------------------------------------
    # Row building
    # ------------------------------------------------------------------

    @staticmethod
    def _build_rows(
        parsed: ParsedExport, connection_id: str, patient_id: str
    ) -> dict[type, list[dict]]:
        """Build insert rows for one connection from a parsed export."""
        now = datetime.now(timezone.utc)

        def base(fhir_id: Optional[str], raw: dict) -> dict:
            return {
                "id": generate_uuid(),
                "connection_id": connection_id,
                "patient_id": patient_id,
                "fhir_id": fhir_id,
                "raw_resource": raw,
                "created_at": now,
            }

        observations = [
            {
                **base(f.fhir_id, raw),
                "code": f.code,
                "display": f.display,
                "category": f.category,
                "value": f.value,
                "unit": f.unit,
                "effective_at": to_naive_utc(f.effective_at),
            }
            for f, raw in parsed.observations
        ]
        medications = [
            {
                **base(f.fhir_id, raw),
                "name": f.name,
                "dosage": f.dosage,
                "status": f.status,
                "prescribed_at": to_naive_utc(f.prescribed_at),
            }
            for f, raw in parsed.medications
        ]
        conditions = [
            {
                **base(f.fhir_id, raw),
                "code": f.code,
                "display": f.display,
                "clinical_status": f.clinical_status,
                "onset_at": to_naive_utc(f.onset_at),
            }
            for f, raw in parsed.conditions
        ]
        encounters = [
            {
                **base(f.fhir_id, raw),
                "type": f.type,
                "reason_text": f.reason_text,
                "service_type": f.service_type,
                "period_start": to_naive_utc(f.period_start),
                "period_end": to_naive_utc(f.period_end),
            }
            for f, raw in parsed.encounters
        ]
        return {
            HealthObservation: observations,
            HealthMedication: medications,
            HealthCondition: conditions,
            HealthEncounter: encounters,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _apply_statement_timeout(self, db: Session) -> None:
        """Bound each statement server-side where the engine supports it."""
        if db.get_bind().dialect.name == "postgresql":
            timeout_ms = int(self._timeout_seconds * 1000)
            db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

    def _check_deadline(self, deadline: float, connection_id: str) -> None:
        if time.monotonic() > deadline:
            raise IngestTransactionError(
                f"EHI ingest exceeded {self._timeout_seconds:g}s timeout",
                connection_id=connection_id,
            )

    def replace_snapshot(
        self,
        db: Session,
        parsed: ParsedExport,
        connection_id: str,
        patient_id: str,
    ) -> IngestCounts:
        """Atomically replace a connection's snapshot with a parsed export.

        Commits on success. On any failure the transaction is rolled back and
        the previous snapshot stays in place.

        Raises:
            IngestTransactionError: The replace failed or timed out.
        """
        rows_by_model = self._build_rows(parsed, connection_id, patient_id)
        deadline = time.monotonic() + self._timeout_seconds

        try:
            self._apply_statement_timeout(db)
            for model in SNAPSHOT_MODELS:
                self._check_deadline(deadline, connection_id)
                db.execute(delete(model).where(model.connection_id == connection_id))
            for model in SNAPSHOT_MODELS:
                for chunk in _chunks(rows_by_model[model], self._batch_size):
                    self._check_deadline(deadline, connection_id)
                    db.execute(insert(model), chunk)
            db.commit()
        except IngestTransactionError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "EHI ingest transaction failed for connection=%s (rolled back)",
                connection_id, exc_info=True,
            )
            raise IngestTransactionError(
                f"EHI ingest failed: {exc}", connection_id=connection_id
            ) from exc

        counts = IngestCounts(
            observations=len(rows_by_model[HealthObservation]),
            medications=len(rows_by_model[HealthMedication]),
            conditions=len(rows_by_model[HealthCondition]),
            encounters=len(rows_by_model[HealthEncounter]),
        )
        logger.info(
            "Ingested connection=%s: observations=%d medications=%d conditions=%d encounters=%d",
            connection_id,
            counts.observations,
            counts.medications,
            counts.conditions,
            counts.encounters,
        )
        return counts

    def ingest_ndjson(
        self,
        db: Session,
        ndjson_text: str,
        connection_id: str,
        patient_id: str,
    ) -> IngestCounts:
        """Parse an NDJSON export and replace the connection's snapshot with it."""
        parsed = self.parse_ndjson(ndjson_text)
        return self.replace_snapshot(db, parsed, connection_id, patient_id)
