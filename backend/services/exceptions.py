"""Exceptions raised by the health-connection services.

The API layer maps these to HTTP status codes; the webhook pipeline records
them as failure reasons on the affected connections.
"""

# Stored failure reasons are truncated to fit HealthConnection.last_export_failure_reason
FAILURE_REASON_MAX_LENGTH = 500


class HealthDataError(Exception):
    """Base exception for the health-data ingestion pipeline."""

    pass


class NotFoundError(HealthDataError):
    """The patient or connection does not exist (or is not visible)."""

    pass


class AccessDeniedError(HealthDataError):
    """The acting user may not act on this patient's connections."""

    pass


class ValidationError(HealthDataError):
    """The request is malformed (e.g. a blank org connection id)."""

    pass


class WebhookAuthenticationError(HealthDataError):
    """A webhook delivery did not carry the configured shared secret."""

    pass


class ResourceParseError(HealthDataError):
    """One NDJSON line could not be decoded into a FHIR resource.

    Raised per line and handled inside the ingest; the line is skipped.
    """

    def __init__(self, message: str, line_number: int):
        self.line_number = line_number
        super().__init__(message)


class IngestTransactionError(HealthDataError):
    """The snapshot replace failed and was rolled back."""

    def __init__(self, message: str, connection_id: str = ""):
        self.connection_id = connection_id
        super().__init__(message)


def failure_reason(exc: BaseException) -> str:
    """Render an exception as a stored failure reason (truncated)."""
    message = str(exc) or exc.__class__.__name__
    return message[:FAILURE_REASON_MAX_LENGTH]
