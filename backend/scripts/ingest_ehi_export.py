#!/usr/bin/env python
"""Re-ingest a locally saved Fasten EHI export.

Replaces the clinical snapshot of every health connection linked to the
given org connection id (optionally only one patient's), exactly as the
webhook would after a successful download.

Usage:
    cd backend
    uv run python -m scripts.ingest_ehi_export export.ndjson --org-connection-id ID [--patient-id P] [--dry-run]
"""

import argparse
import sys
from pathlib import Path

from database import get_session_local
from logging_config import setup_logging
from models import HealthConnection
from services.ehi_ingest_service import EhiIngestService
from services.exceptions import IngestTransactionError
from services.health_connection_service import HealthConnectionService


def ingest_file(
    path: str,
    org_connection_id: str,
    patient_id: str | None = None,
    dry_run: bool = False,
) -> int:
    """Ingest an NDJSON export file. Returns the number of failed connections."""
    ndjson_text = Path(path).read_text(encoding="utf-8")
    service = EhiIngestService()
    parsed = service.parse_ndjson(ndjson_text)

    print(f"Lines read:        {parsed.lines_read}")
    print(f"Lines skipped:     {parsed.lines_skipped}")
    print(f"Ignored resources: {parsed.resources_ignored}")
    print(f"Observations:      {len(parsed.observations)}")
    print(f"Medications:       {len(parsed.medications)}")
    print(f"Conditions:        {len(parsed.conditions)}")
    print(f"Encounters:        {len(parsed.encounters)}")
    print(f"Mode: {'DRY RUN' if dry_run else 'LIVE'}")
    print()

    SessionLocal = get_session_local()
    db = SessionLocal()
    failures = 0
    try:
        connections: list[HealthConnection] = HealthConnectionService.find_by_org_connection_id(
            db, org_connection_id
        )
        if patient_id:
            connections = [c for c in connections if c.patient_id == patient_id]
        if not connections:
            print(f"No health connection found for org_connection_id={org_connection_id}")
            return 0

        for connection in connections:
            connection_id = connection.id
            print(f"Connection {connection_id} (patient {connection.patient_id})")
            if dry_run:
                continue
            try:
                HealthConnectionService.mark_synced(connection, connection.last_export_task_id)
                counts = service.replace_snapshot(db, parsed, connection_id, connection.patient_id)
            except IngestTransactionError as e:
                failures += 1
                print(f"  FAILED: {e}")
                continue
            print(f"  Replaced snapshot: {counts.total} rows")
    finally:
        db.close()
    return failures


def main():
    parser = argparse.ArgumentParser(description="Re-ingest a saved Fasten EHI export")
    parser.add_argument("file", help="Path to the NDJSON export file")
    parser.add_argument("--org-connection-id", required=True, help="Fasten org connection id")
    parser.add_argument("--patient-id", help="Only replace this patient's snapshot")
    parser.add_argument("--dry-run", action="store_true", help="Parse and report without writing")
    args = parser.parse_args()

    setup_logging()
    failures = ingest_file(args.file, args.org_connection_id, args.patient_id, args.dry_run)
    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
