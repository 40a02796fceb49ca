# clinicq/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class QueueError(Exception):
    """
    Base class for every business-rule failure raised by the queue core.

    `kind` is the stable machine-readable name returned to clients,
    `status_code` is the HTTP status the API layer maps it to.
    """

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str = "", *, field: Optional[str] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"kind": self.kind, "detail": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(QueueError):
    """Malformed input that passed schema parsing but breaks a domain rule."""

    kind = "ValidationError"
    status_code = 400


class NotFound(QueueError):
    kind = "NotFound"
    status_code = 404


class DepartmentUnavailable(NotFound):
    """Department absent, soft-deleted or outside the organization."""

    kind = "DepartmentUnavailable"


class DoctorUnavailable(NotFound):
    """Doctor absent, inactive, soft-deleted or in another department."""

    kind = "DoctorUnavailable"


class DuplicateBooking(QueueError):
    kind = "DuplicateBooking"
    status_code = 409


class SlotFull(QueueError):
    kind = "SlotFull"
    status_code = 409


class QueueEmpty(QueueError):
    kind = "QueueEmpty"
    status_code = 404


class InvalidTransition(QueueError):
    kind = "InvalidTransition"
    status_code = 409


class AccessDenied(QueueError):
    kind = "AccessDenied"
    status_code = 403


class Conflict(QueueError):
    """
    Token race lost at insert time. Retried by admission, never returned
    to a client unless retries are exhausted (then InternalError).
    """

    kind = "Conflict"
    status_code = 409


class InternalError(QueueError):
    kind = "InternalError"
    status_code = 500


__all__ = [
    "QueueError",
    "ValidationError",
    "NotFound",
    "DepartmentUnavailable",
    "DoctorUnavailable",
    "DuplicateBooking",
    "SlotFull",
    "QueueEmpty",
    "InvalidTransition",
    "AccessDenied",
    "Conflict",
    "InternalError",
]
