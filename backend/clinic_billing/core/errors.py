"""Ledger error taxonomy.

Services raise these; routers translate them into HTTP responses and the
remote client translates HTTP responses back into them, so callers on either
side of the wire handle the same exception types.
"""

from typing import Any


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "ledger_error"
    status_code = 500

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "field": self.field}


class ValidationError(LedgerError):
    """Malformed or missing input, e.g. a non-positive amount."""

    code = "validation_error"
    status_code = 422


class InvalidStateError(LedgerError):
    """The operation is not allowed in the invoice's current status."""

    code = "invalid_state"
    status_code = 400


class NotFoundError(LedgerError):
    """Unknown invoice or appointment id."""

    code = "not_found"
    status_code = 404


class ConflictError(LedgerError):
    """A concurrent mutation on the same invoice won the race."""

    code = "conflict"
    status_code = 409


class RenderError(LedgerError):
    """The invoice document could not be rendered."""

    code = "render_error"
    status_code = 502


class TransportError(LedgerError):
    """The call to the ledger did not complete; its outcome is unknown."""

    code = "transport_error"
    status_code = 503


ERRORS_BY_CODE: dict[str, type[LedgerError]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        InvalidStateError,
        NotFoundError,
        ConflictError,
        RenderError,
        TransportError,
    )
}


def error_from_detail(detail: Any, fallback_status: int) -> LedgerError:
    """Rebuild a ledger error from an HTTP error ``detail`` payload."""
    if isinstance(detail, dict) and detail.get("code") in ERRORS_BY_CODE:
        cls = ERRORS_BY_CODE[detail["code"]]
        return cls(str(detail.get("message") or ""), field=detail.get("field"))

    message = detail if isinstance(detail, str) else str(detail or "")
    for cls in ERRORS_BY_CODE.values():
        if cls.status_code == fallback_status and cls is not TransportError:
            return cls(message)
    return LedgerError(message)
