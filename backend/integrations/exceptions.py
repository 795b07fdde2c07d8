"""Typed exception hierarchy for partner integration errors.

Provides structured exceptions for differentiated error handling
(missing configuration vs transient network/API errors vs data issues).
None of these are retried automatically; callers log them and record the
message on the affected connection(s).
"""


class PartnerError(Exception):
    """Base exception for all partner-related errors.

    Carries the partner name so callers can identify which integration failed.
    """

    def __init__(self, message: str, partner_name: str = ""):
        self.partner_name = partner_name
        super().__init__(message)


class PartnerConfigurationError(PartnerError):
    """Partner credentials are absent; the feature is disabled, not broken."""

    pass


class PartnerConnectionError(PartnerError):
    """Network failures: timeouts, DNS resolution, connection refused."""

    pass


class PartnerAPIError(PartnerError):
    """HTTP 4xx/5xx responses from the partner API."""

    def __init__(
        self,
        message: str,
        partner_name: str = "",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, partner_name)


class PartnerDataError(PartnerError):
    """Malformed or unparseable response from the partner."""

    pass

