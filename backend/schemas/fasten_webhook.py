"""Pydantic schemas for Fasten Connect webhook deliveries.

Unknown keys are kept (``extra="allow"``) so nothing Fasten adds to a
payload is stripped before the handler sees it.
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _id_as_str(value: Any) -> Any:
    """Numeric identifiers are accepted and stored in their decimal form."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


FastenId = Annotated[Optional[str], BeforeValidator(_id_as_str)]


class WebhookEnvelope(BaseModel):
    """Common wrapper around every webhook event."""

    model_config = ConfigDict(extra="allow")

    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    id: FastenId = None
    date: Optional[str] = None
    api_mode: Optional[str] = None


class DownloadLink(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str
    export_type: Optional[str] = None
    content_type: Optional[str] = None


class EhiExportSuccessData(BaseModel):
    """``data`` of a ``patient.ehi_export_success`` event."""

    model_config = ConfigDict(extra="allow")

    org_connection_id: FastenId = None
    task_id: FastenId = None
    org_id: FastenId = None
    download_links: list[DownloadLink] = Field(default_factory=list)
    stats: Optional[dict[str, Any]] = None


class EhiExportFailedData(BaseModel):
    """``data`` of a ``patient.ehi_export_failed`` event."""

    model_config = ConfigDict(extra="allow")

    org_connection_id: FastenId = None
    task_id: FastenId = None
    org_id: FastenId = None
    failure_reason: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
