"""Fasten webhook service - authenticates and dispatches webhook deliveries.

Handles two event kinds:
- ``patient.ehi_export_success``: download the export once and replace the
  snapshot of every local connection for that org connection id
- ``patient.ehi_export_failed``: record the failure on those connections

Fan-out is sequential and isolated: each connection's ingest commits (or
records its failure) on its own, so one bad connection never affects the
others. Nothing raised here reaches the partner except authentication
failures.
"""

import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import PartnerError
from integrations.fasten_client import FastenConnectClient
from models import HealthConnection
from schemas.fasten_webhook import EhiExportFailedData, EhiExportSuccessData, WebhookEnvelope
from services.ehi_ingest_service import EhiIngestService
from services.exceptions import IngestTransactionError, WebhookAuthenticationError, failure_reason
from services.health_connection_service import HealthConnectionService

logger = logging.getLogger(__name__)

NO_DOWNLOAD_LINKS_REASON = "No download links in webhook"
UNKNOWN_FAILURE_REASON = "unknown"


class WebhookEventType(str, Enum):
    """Webhook event kinds the pipeline understands."""

    EHI_EXPORT_SUCCESS = "patient.ehi_export_success"
    EHI_EXPORT_FAILED = "patient.ehi_export_failed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "WebhookEventType":
        try:
            event_type = cls(value)
        except ValueError:
            return cls.UNKNOWN
        return event_type


@dataclass(frozen=True)
class WebhookAuthConfig:
    """Shared-secret settings for inbound webhooks."""

    secret: str = ""
    allow_unsigned: bool = False

    @classmethod
    def from_settings(cls, app_settings=None) -> "WebhookAuthConfig":
        """Unsigned deliveries need the explicit FASTEN_ALLOW_UNSIGNED_WEBHOOKS opt-in."""
        s = app_settings or settings
        return cls(
            secret=(s.FASTEN_WEBHOOK_SECRET or "").strip(),
            allow_unsigned=bool(s.FASTEN_ALLOW_UNSIGNED_WEBHOOKS),
        )


class FastenWebhookService:
    """Service that turns Fasten webhook deliveries into snapshot updates."""

    def __init__(
        self,
        client: Optional[FastenConnectClient] = None,
        ingest_service: Optional[EhiIngestService] = None,
        auth_config: Optional[WebhookAuthConfig] = None,
    ):
        """Initialize with optional collaborators for dependency injection.

        Args:
            client: Fasten client used to download exports (defaults to
                    one built from settings on first use).
            ingest_service: NDJSON ingestor (defaults to EhiIngestService()).
            auth_config: Webhook secret settings (defaults to settings).
        """
        self._client = client
        self._ingest = ingest_service or EhiIngestService()
        self._auth = auth_config or WebhookAuthConfig.from_settings()

    @property
    def client(self) -> FastenConnectClient:
        if self._client is None:
            self._client = FastenConnectClient()
        return self._client

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, header_value: Optional[str]) -> None:
        """Check the shared-secret header of a delivery.

        Raises:
            WebhookAuthenticationError: Secret mismatch, or no secret is
                configured and unsigned deliveries are not allowed.
        """
        if not self._auth.secret:
            if not self._auth.allow_unsigned:
                raise WebhookAuthenticationError(
                    "Webhook secret not configured; rejecting unsigned delivery"
                )
            logger.warning("Accepting unsigned Fasten webhook (FASTEN_WEBHOOK_SECRET not set)")
            return
        provided = (header_value or "").strip()
        if not provided or not hmac.compare_digest(
            provided.encode("utf-8"), self._auth.secret.encode("utf-8")
        ):
            raise WebhookAuthenticationError("Invalid webhook signature")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, db: Session, payload: dict[str, Any], signature: Optional[str]) -> None:
        """Authenticate and process one delivery.

        The payload is only inspected after authentication succeeds.

        Raises:
            WebhookAuthenticationError: Only authentication failures escape.
        """
        self.authenticate(signature)

        try:
            envelope = WebhookEnvelope.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning("Malformed Fasten webhook envelope: %d error(s)", e.error_count())
            return

        event_type = WebhookEventType.parse(envelope.type)
        logger.info("Fasten webhook received: type=%s id=%s", envelope.type, envelope.id)

        try:
            if event_type == WebhookEventType.EHI_EXPORT_SUCCESS:
                self.handle_export_success(db, EhiExportSuccessData.model_validate(envelope.data))
            elif event_type == WebhookEventType.EHI_EXPORT_FAILED:
                self.handle_export_failed(db, EhiExportFailedData.model_validate(envelope.data))
            else:
                logger.info("Ignoring Fasten webhook of unhandled type %s", envelope.type)
        except PydanticValidationError as e:
            logger.warning(
                "Malformed Fasten webhook data for %s: %d error(s)", envelope.type, e.error_count()
            )

    def _connections_for(self, db: Session, org_connection_id: Optional[str], event: str):
        if not org_connection_id:
            logger.warning("Fasten %s webhook missing org_connection_id", event)
            return []
        connections = HealthConnectionService.find_by_org_connection_id(db, org_connection_id)
        if not connections:
            logger.warning(
                "Fasten %s webhook: no health connection for org_connection_id=%s",
                event, org_connection_id,
            )
        return connections

    def handle_export_success(self, db: Session, data: EhiExportSuccessData) -> None:
        """Download the export once and ingest it for every matching connection."""
        connections = self._connections_for(db, data.org_connection_id, "export_success")
        if not connections:
            return

        if not data.download_links:
            logger.warning(
                "EHI export_success missing download_links for %s", data.org_connection_id
            )
            HealthConnectionService.record_export_failure(
                connections, data.task_id, NO_DOWNLOAD_LINKS_REASON
            )
            db.commit()
            return

        try:
            ndjson_text = self.client.download_export_file(data.download_links[0].url)
        except PartnerError as e:
            logger.error(
                "EHI export download failed for org_connection_id=%s: %s",
                data.org_connection_id, e,
            )
            HealthConnectionService.record_export_failure(connections, data.task_id, e)
            db.commit()
            return

        try:
            parsed = self._ingest.parse_ndjson(ndjson_text)
        except Exception as e:
            logger.exception(
                "EHI export parse failed for org_connection_id=%s", data.org_connection_id
            )
            HealthConnectionService.record_export_failure(
                connections, data.task_id, f"EHI export parse failed: {failure_reason(e)}"
            )
            db.commit()
            return

        for connection in connections:
            self._ingest_for_connection(db, connection, parsed, data.task_id)

    def _ingest_for_connection(self, db: Session, connection: HealthConnection, parsed, task_id) -> None:
        connection_id = connection.id
        patient_id = connection.patient_id
        try:
            # Committed together with the snapshot; discarded by its rollback
            HealthConnectionService.mark_synced(connection, task_id)
            self._ingest.replace_snapshot(db, parsed, connection_id, patient_id)
        except IngestTransactionError as e:
            logger.error("EHI ingest failed for connection=%s: %s", connection_id, e)
            HealthConnectionService.record_export_failure([connection], task_id, e)
            db.commit()
            return
        logger.info(
            "EHI export synced: connection=%s patient=%s task_id=%s",
            connection_id, patient_id, task_id,
        )

    def handle_export_failed(self, db: Session, data: EhiExportFailedData) -> None:
        """Record Fasten's failure reason on every matching connection."""
        connections = self._connections_for(db, data.org_connection_id, "export_failed")
        if not connections:
            return
        reason = data.failure_reason or UNKNOWN_FAILURE_REASON
        logger.warning(
            "EHI export failed for org_connection_id=%s: %s", data.org_connection_id, reason
        )
        HealthConnectionService.record_export_failure(connections, data.task_id, reason)
        db.commit()
