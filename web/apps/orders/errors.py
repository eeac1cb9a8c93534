"""Typed failures raised by the orders domain.

Every error carries a short machine readable ``code`` and an HTTP-like
``status_code`` so transport layers can map it to a structured response
without inspecting messages. Callers branch on the exception class
(validation vs not found vs unavailable) rather than on strings.
"""

from typing import Any


class OrderError(Exception):
    """Base class for all orders domain errors.

    Attributes:
        code: Short error code returned as ``detail`` in responses.
        status_code: HTTP status the error maps to.
        message: Human readable description.
        extra: Additional JSON-serializable fields added to the payload.
    """

    code = "ORDER_ERROR"
    status_code = 500

    def __init__(self, message: str | None = None, code: str | None = None, **extra: Any):
        self.message = message or self.code
        if code:
            self.code = code
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Return the structured error payload."""
        body = {"detail": self.code, "message": self.message, "status": self.status_code}
        body.update(self.extra)
        return body


class ValidationError(OrderError):
    """Request rejected by business validation (unknown products, empty order)."""

    code = "INVALID_PRODUCTS"
    status_code = 400


class NotFound(OrderError):
    code = "NOT_FOUND"
    status_code = 404


class AlreadyPaid(OrderError):
    code = "ORDER_ALREADY_PAID"
    status_code = 409


class RemoteUnavailable(OrderError):
    """Catalog or payment service unreachable, timed out or failing."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503


class PersistenceError(OrderError):
    """The local store rejected a read or write."""

    code = "PERSISTENCE_ERROR"
    status_code = 500


class StatusConflict(OrderError):
    """The order changed between reading it and writing the new status."""

    code = "ORDER_STATUS_CHANGED"
    status_code = 409
