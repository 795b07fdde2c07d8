"""Tests for scripts/ingest_ehi_export.py."""

from unittest.mock import patch

import pytest

from models import HealthConnection, HealthObservation
from scripts.ingest_ehi_export import ingest_file
from services.exceptions import IngestTransactionError
from tests.fixtures import create_connection, create_patient
from tests.fixtures.mocks import SAMPLE_EXPORT_NDJSON


@pytest.fixture
def export_path(tmp_path):
    path = tmp_path / "export.ndjson"
    path.write_text(SAMPLE_EXPORT_NDJSON + "\nnot json\n", encoding="utf-8")
    return str(path)


@pytest.fixture
def use_test_db(db):
    with patch("scripts.ingest_ehi_export.get_session_local", return_value=lambda: db):
        yield db


class TestIngestFile:
    def test_replaces_snapshot(self, use_test_db, connection, export_path, capsys):
        db = use_test_db
        connection_id = connection.id

        failures = ingest_file(export_path, "org_conn_1")

        assert failures == 0
        assert db.query(HealthObservation).filter_by(connection_id=connection_id).count() == 1
        assert db.get(HealthConnection, connection_id).last_synced_at is not None

        out = capsys.readouterr().out
        assert "Lines skipped:     1" in out
        assert "Replaced snapshot: 4 rows" in out

    def test_dry_run_writes_nothing(self, use_test_db, connection, export_path, capsys):
        failures = ingest_file(export_path, "org_conn_1", dry_run=True)

        assert failures == 0
        assert use_test_db.query(HealthObservation).count() == 0
        assert "DRY RUN" in capsys.readouterr().out

    def test_patient_filter(self, use_test_db, connection, export_path):
        db = use_test_db
        other = create_connection(db, create_patient(db, "user-patient-2"), "org_conn_1")
        other_id, connection_id = other.id, connection.id

        ingest_file(export_path, "org_conn_1", patient_id=other.patient_id)

        assert db.query(HealthObservation).filter_by(connection_id=other_id).count() == 1
        assert db.query(HealthObservation).filter_by(connection_id=connection_id).count() == 0

    def test_unknown_org_connection(self, use_test_db, connection, export_path, capsys):
        assert ingest_file(export_path, "org_unknown") == 0
        assert "No health connection found" in capsys.readouterr().out

    def test_failed_connection_counted(self, use_test_db, connection, export_path, capsys):
        with patch(
            "scripts.ingest_ehi_export.EhiIngestService.replace_snapshot",
            side_effect=IngestTransactionError("EHI ingest failed: disk full", connection.id),
        ):
            failures = ingest_file(export_path, "org_conn_1")

        assert failures == 1
        assert "FAILED: EHI ingest failed: disk full" in capsys.readouterr().out
