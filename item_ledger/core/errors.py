"""Domain error taxonomy.

Services raise these exceptions; the API layer turns them into JSON
responses through a single handler (see ``item_ledger.api.error_handlers``).
Each error carries the HTTP status it maps to and a short machine readable
code so that callers outside HTTP (the worker, scripts) can branch on it
without parsing messages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all expected failures of the ledger core."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(LedgerError):
    status_code = 404
    code = "not_found"


class ConflictError(LedgerError):
    status_code = 409
    code = "conflict"


class ServiceUnavailableError(LedgerError):
    """The classifier oracle could not be reached."""

    status_code = 503
    code = "service_unavailable"


class RequestTimeoutError(LedgerError):
    """The classifier oracle did not answer within the configured bound."""

    status_code = 408
    code = "request_timeout"


class BadInputError(LedgerError):
    """Unusable input: an unparsable oracle answer or a malformed item list."""

    status_code = 400
    code = "bad_input"

    def __init__(self, message: str, *, raw_response: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        details = dict(details or {})
        if raw_response is not None:
            details["raw_response"] = raw_response
        super().__init__(message, details=details)
        self.raw_response = raw_response


class ValidationError(LedgerError):
    """An item name is empty after trimming or longer than allowed."""

    status_code = 422
    code = "validation_error"


__all__ = [
    "LedgerError",
    "NotFoundError",
    "ConflictError",
    "ServiceUnavailableError",
    "RequestTimeoutError",
    "BadInputError",
    "ValidationError",
]
