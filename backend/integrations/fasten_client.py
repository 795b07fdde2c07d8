"""Fasten Connect API client.

Fasten Connect links a patient to an external health-record source (an
"org connection") and produces bulk EHI exports of that source as NDJSON
files. All calls use HTTP Basic auth built from the public id and private
key; the private key never leaves the backend.

Every call is single-attempt. Status and export requests return ``None`` on
failure (logged, never raised) so the rest of the portal keeps working when
the partner is down or unconfigured; the export download raises, because
the webhook handler records the failure on the affected connections.
"""

import base64
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import quote, urlencode

import httpx

from config import settings
from integrations.exceptions import (
    PartnerAPIError,
    PartnerConfigurationError,
    PartnerConnectionError,
    PartnerDataError,
    PartnerError,
)

logger = logging.getLogger(__name__)

PARTNER_NAME = "Fasten"
DEFAULT_BASE_URL = "https://api.connect.fastenhealth.com/v1"

_VERSION_SUFFIX_RE = re.compile(r"/v\d+$")

_EXPORT_ACCEPT = "application/fhir+ndjson, application/ndjson, application/json"


class ConnectionStatus(str, Enum):
    """Authorization state of an org connection, as reported by Fasten."""

    AUTHORIZED = "authorized"
    REJECTED = "rejected"
    REFRESHING = "refreshing"


class ExportStatus(str, Enum):
    """State of an EHI export task."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


def normalize_base_url(raw: str | None) -> str:
    """Normalize a configured base URL to end in a ``/vN`` API version.

    Accepts either ``https://host/v1`` or ``https://host`` (with or without
    trailing slashes) and returns ``https://host/v1`` in both cases.
    """
    base = (raw or "").strip().rstrip("/")
    if not base:
        return DEFAULT_BASE_URL
    if _VERSION_SUFFIX_RE.search(base):
        return base
    return f"{base}/v1"


@dataclass(frozen=True)
class FastenCredentials:
    """Immutable Fasten configuration, resolved once at startup."""

    public_id: str = ""
    private_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    endpoint_id: str = ""
    brand_id: str = ""
    portal_id: str = ""
    timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, app_settings=None) -> "FastenCredentials":
        """Build credentials from application settings (defaults to global settings)."""
        s = app_settings or settings
        return cls(
            public_id=(s.FASTEN_PUBLIC_ID or "").strip(),
            private_key=(s.FASTEN_PRIVATE_KEY or "").strip(),
            base_url=normalize_base_url(s.FASTEN_BASE_URL),
            endpoint_id=(s.FASTEN_DEFAULT_ENDPOINT_ID or "").strip(),
            brand_id=(s.FASTEN_DEFAULT_BRAND_ID or "").strip(),
            portal_id=(s.FASTEN_DEFAULT_PORTAL_ID or "").strip(),
            timeout_seconds=s.FASTEN_HTTP_TIMEOUT_SECONDS,
        )

    def basic_auth_header(self) -> str | None:
        """Return the ``Authorization`` header value, or None if incomplete."""
        if not self.public_id or not self.private_key:
            return None
        token = base64.b64encode(
            f"{self.public_id}:{self.private_key}".encode()
        ).decode("ascii")
        return f"Basic {token}"


@dataclass
class FastenConnectionStatus:
    """Status of one org connection."""

    org_connection_id: str
    status: ConnectionStatus
    org_id: str | None = None
    platform_type: str | None = None
    api_mode: str | None = None
    scope: str | None = None
    consent_expires_at: str | None = None
    raw_data: dict | None = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> "FastenConnectionStatus":
        try:
            status = ConnectionStatus(data.get("status"))
        except ValueError as exc:
            raise PartnerDataError(
                f"Unknown connection status {data.get('status')!r}",
                partner_name=PARTNER_NAME,
            ) from exc
        return cls(
            org_connection_id=data.get("org_connection_id", ""),
            status=status,
            org_id=data.get("org_id"),
            platform_type=data.get("platform_type"),
            api_mode=data.get("api_mode"),
            scope=data.get("scope"),
            consent_expires_at=data.get("consent_expires_at"),
            raw_data=data,
        )


@dataclass
class FastenEhiExport:
    """An EHI export task as acknowledged by Fasten."""

    task_id: str
    status: ExportStatus

    @classmethod
    def from_dict(cls, data: dict) -> "FastenEhiExport":
        task_id = data.get("task_id")
        if not task_id:
            raise PartnerDataError("EHI export response missing task_id", partner_name=PARTNER_NAME)
        try:
            status = ExportStatus(data.get("status"))
        except ValueError as exc:
            raise PartnerDataError(
                f"Unknown export status {data.get('status')!r}",
                partner_name=PARTNER_NAME,
            ) from exc
        return cls(task_id=str(task_id), status=status)


class FastenConnectClient:
    """Wrapper around the Fasten Connect bridge API."""

    def __init__(
        self,
        credentials: FastenCredentials | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            credentials: Fasten configuration (defaults to settings). The
                         Basic auth header is derived once here; a client
                         built without both credentials stays unconfigured.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        self._credentials = credentials or FastenCredentials.from_settings()
        self._auth_header = self._credentials.basic_auth_header()
        self._transport = transport
        if self._auth_header is None:
            logger.warning(
                "Fasten Connect not configured (FASTEN_PUBLIC_ID, FASTEN_PRIVATE_KEY). "
                "Health connections disabled."
            )

    @property
    def partner_name(self) -> str:
        return PARTNER_NAME

    @property
    def base_url(self) -> str:
        return self._credentials.base_url

    def is_configured(self) -> bool:
        """Check if both Fasten credentials are present."""
        return self._auth_header is not None

    def get_connect_url(self, redirect_uri: str) -> str | None:
        """Build the URL that starts the Fasten Connect flow.

        The user is redirected here; after authorizing a source, Fasten
        redirects back to ``redirect_uri`` with an ``org_connection_id``.

        Returns:
            The connect URL, or None if no public id is configured.
        """
        creds = self._credentials
        if not creds.public_id:
            return None
        params = {"public_id": creds.public_id, "redirect_uri": redirect_uri}
        if creds.endpoint_id:
            params["endpoint_id"] = creds.endpoint_id
        if creds.brand_id:
            params["brand_id"] = creds.brand_id
        if creds.portal_id:
            params["portal_id"] = creds.portal_id
        return f"{creds.base_url}/bridge/connect?{urlencode(params)}"

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Issue one authenticated request, mapping failures to PartnerErrors."""
        if self._auth_header is None:
            raise PartnerConfigurationError(
                "Fasten credentials not configured", partner_name=PARTNER_NAME
            )
        headers = {"Authorization": self._auth_header}
        headers.update(kwargs.pop("headers", {}))
        try:
            with httpx.Client(
                timeout=self._credentials.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = client.request(method, url, headers=headers, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise PartnerAPIError(
                f"Fasten API error (HTTP {status} {exc.response.reason_phrase})",
                partner_name=PARTNER_NAME,
                status_code=status,
            ) from exc
        except httpx.HTTPError as exc:
            raise PartnerConnectionError(
                f"Fasten connection failed: {exc}",
                partner_name=PARTNER_NAME,
            ) from exc

    @staticmethod
    def _unwrap_data(response: httpx.Response) -> dict:
        """Extract ``data`` from a ``{"success": ..., "data": {...}}`` envelope."""
        try:
            body = response.json()
        except ValueError as exc:
            raise PartnerDataError(
                "Fasten returned a non-JSON response", partner_name=PARTNER_NAME
            ) from exc
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise PartnerDataError(
                "Fasten response missing data object", partner_name=PARTNER_NAME
            )
        return data

    def get_connection_status(self, org_connection_id: str) -> FastenConnectionStatus | None:
        """Fetch the authorization status of an org connection.

        Returns:
            The status, or None when unconfigured or the call fails.
        """
        if not self.is_configured():
            return None
        url = f"{self.base_url}/bridge/org_connection/{quote(org_connection_id, safe='')}"
        try:
            response = self._request("GET", url, headers={"Accept": "application/json"})
            return FastenConnectionStatus.from_dict(self._unwrap_data(response))
        except PartnerError as exc:
            logger.warning("Fasten get_connection_status %s failed: %s", org_connection_id, exc)
            return None

    def request_ehi_export(self, org_connection_id: str) -> FastenEhiExport | None:
        """Ask Fasten to start a bulk EHI export for an org connection.

        Fasten treats repeated requests for the same org connection as
        idempotent. The result arrives later through the webhook.

        Returns:
            The export task, or None when unconfigured or the call fails.
        """
        if not self.is_configured():
            logger.warning(
                "Fasten request_ehi_export skipped: missing FASTEN_PUBLIC_ID/FASTEN_PRIVATE_KEY"
            )
            return None
        url = f"{self.base_url}/bridge/fhir/ehi-export"
        try:
            response = self._request(
                "POST",
                url,
                headers={"Accept": "application/json"},
                json={"org_connection_id": org_connection_id},
            )
            export = FastenEhiExport.from_dict(self._unwrap_data(response))
        except PartnerError as exc:
            logger.warning("Fasten request_ehi_export %s failed: %s", org_connection_id, exc)
            return None
        logger.info(
            "Fasten EHI export requested: org_connection_id=%s task_id=%s status=%s",
            org_connection_id, export.task_id, export.status.value,
        )
        return export

    def download_export_file(self, download_url: str) -> str:
        """Download an EHI export file from a webhook-issued download link.

        The whole body is buffered in memory.

        Raises:
            PartnerConfigurationError: Credentials are missing.
            PartnerAPIError: Fasten answered with a 4xx/5xx.
            PartnerConnectionError: The download could not be completed.
        """
        try:
            response = self._request("GET", download_url, headers={"Accept": _EXPORT_ACCEPT})
        except PartnerAPIError as exc:
            raise PartnerAPIError(
                f"Download failed: {exc}", partner_name=PARTNER_NAME, status_code=exc.status_code
            ) from exc
        text = response.text
        logger.info("Fasten export downloaded (%d bytes)", len(text))
        return text
