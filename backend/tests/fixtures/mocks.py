"""Mock implementations for external services."""

from integrations.exceptions import PartnerAPIError, PartnerConnectionError
from integrations.fasten_client import (
    ConnectionStatus,
    ExportStatus,
    FastenConnectionStatus,
    FastenEhiExport,
)

TEST_WEBHOOK_SECRET = "whsec_test"

SAMPLE_OBSERVATION_LINE = (
    '{"resourceType":"Observation","id":"o1",'
    '"code":{"coding":[{"code":"8480-6","display":"Systolic BP"}]},'
    '"valueQuantity":{"value":120,"unit":"mmHg"},'
    '"effectiveDateTime":"2024-06-01T10:00:00Z"}'
)

SAMPLE_MEDICATION_LINE = (
    '{"resourceType":"MedicationRequest","id":"m1","status":"active",'
    '"medicationCodeableConcept":{"text":"Lisinopril 10 MG"},'
    '"dosageInstruction":[{"text":"Take one tablet daily"}],'
    '"authoredOn":"2024-05-20"}'
)

SAMPLE_CONDITION_LINE = (
    '{"resourceType":"Condition","id":"c1",'
    '"code":{"text":"Hypertension","coding":[{"code":"38341003","display":"HTN"}]},'
    '"clinicalStatus":{"coding":[{"code":"active"}]},'
    '"onsetDateTime":"2020-01-15"}'
)

SAMPLE_ENCOUNTER_LINE = (
    '{"resourceType":"Encounter","id":"e1",'
    '"type":[{"text":"Office visit"}],'
    '"reasonCode":[{"coding":[{"display":"Follow-up"}]}],'
    '"period":{"start":"2024-06-01T09:30:00Z","end":"2024-06-01T10:15:00Z"}}'
)

SAMPLE_EXPORT_NDJSON = "\n".join(
    [
        SAMPLE_OBSERVATION_LINE,
        SAMPLE_MEDICATION_LINE,
        SAMPLE_CONDITION_LINE,
        SAMPLE_ENCOUNTER_LINE,
        '{"resourceType":"Patient","id":"p1"}',
    ]
)


class MockFastenClient:
    """Mock Fasten Connect client for testing.

    Records every call so tests can assert on what was requested.
    """

    def __init__(
        self,
        configured: bool = True,
        export: FastenEhiExport | None = None,
        status: FastenConnectionStatus | None = None,
        download_text: str = SAMPLE_EXPORT_NDJSON,
        should_fail: bool = False,
        failure_message: str = "Mock Fasten error",
        failure_type: str = "generic",
        download_should_fail: bool = False,
        connect_url: str | None = "https://connect.example/bridge/connect?public_id=public_test_x",
    ):
        self._configured = configured
        self._export = export
        self._status = status
        self._download_text = download_text
        self._should_fail = should_fail
        self._failure_message = failure_message
        self._failure_type = failure_type
        self._download_should_fail = download_should_fail
        self._connect_url = connect_url
        self.export_requests: list[str] = []
        self.status_requests: list[str] = []
        self.downloads: list[str] = []
        self.connect_redirects: list[str] = []

    def _raise_failure(self) -> None:
        """Raise the appropriate exception based on failure_type."""
        if self._failure_type == "api":
            raise PartnerAPIError(self._failure_message, partner_name="Fasten", status_code=500)
        elif self._failure_type == "connection":
            raise PartnerConnectionError(self._failure_message, partner_name="Fasten")
        else:
            raise Exception(self._failure_message)

    @property
    def partner_name(self) -> str:
        return "Fasten"

    def is_configured(self) -> bool:
        return self._configured

    def get_connect_url(self, redirect_uri: str) -> str | None:
        self.connect_redirects.append(redirect_uri)
        return self._connect_url if self._configured else None

    def get_connection_status(self, org_connection_id: str) -> FastenConnectionStatus | None:
        self.status_requests.append(org_connection_id)
        if self._should_fail:
            self._raise_failure()
        if self._status is not None:
            return self._status
        return FastenConnectionStatus(
            org_connection_id=org_connection_id,
            status=ConnectionStatus.AUTHORIZED,
            org_id="org_1",
            platform_type="epic",
        )

    def request_ehi_export(self, org_connection_id: str) -> FastenEhiExport | None:
        self.export_requests.append(org_connection_id)
        if self._should_fail:
            self._raise_failure()
        if self._export is not None:
            return self._export
        return FastenEhiExport(task_id=f"task_{len(self.export_requests)}", status=ExportStatus.PENDING)

    def download_export_file(self, download_url: str) -> str:
        self.downloads.append(download_url)
        if self._download_should_fail:
            raise PartnerAPIError(
                f"Download failed: {self._failure_message}", partner_name="Fasten", status_code=500
            )
        return self._download_text
