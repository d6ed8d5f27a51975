"""Error taxonomy of the export subsystem."""
from typing import Optional


class ExportError(Exception):
    """Base class for errors with a stable, client-facing code."""

    code = "INTERNAL"
    status_code = 500
    default_message = "Une erreur est survenue lors de l'exportation"

    def __init__(self, message: Optional[str] = None, request_id: Optional[str] = None):
        self.message = message or self.default_message
        self.request_id = request_id
        super().__init__(self.message)


class InvalidRequestError(ExportError):
    code = "INVALID_REQUEST"
    status_code = 400
    default_message = "Invalid export request"


class SessionNotFoundError(ExportError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Session not found"


class PaymentRequiredError(ExportError):
    code = "PAYMENT_REQUIRED"
    status_code = 402
    default_message = "Payment required to export data"


class NotOwnerError(ExportError):
    code = "NOT_OWNER"
    status_code = 403
    default_message = "This session belongs to another account"


class TooEarlyError(ExportError):
    code = "TOO_EARLY"
    status_code = 425
    default_message = "The dataset is still being collected"


class UpstreamUnavailableError(ExportError):
    """The scraping provider failed or returned nothing usable.

    Raised after access was granted; the export route substitutes demo
    data instead of surfacing it.
    """

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 502
    default_message = "The data provider is unavailable"


class InternalExportError(ExportError):
    """Unexpected failure; carries only the request id, never internal text."""
