"""
Error taxonomy shared by the reconciliation engine, the gateways and the routes.

Per-item failures inside a batch are caught and reported; anything that escapes
a batch operation is a top-level failure of the whole request.
"""


class ReconciliationError(Exception):
    """Base class for every domain-level failure."""

    code = "reconciliation_error"

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ReconciliationError):
    """Missing or malformed input. Never mutates state."""

    code = "validation_error"


class NotFoundError(ReconciliationError):
    code = "not_found"


class StudentNotFound(NotFoundError):
    code = "student_not_found"


class RecordNotFound(NotFoundError):
    code = "record_not_found"


class ConflictError(ReconciliationError):
    """A concurrent writer got there first."""

    code = "conflict"


class InsufficientCredit(ReconciliationError):
    """Business-rule rejection: the student has no remaining classes. No mutation."""

    code = "insufficient_credit"


class GatewayError(ReconciliationError):
    """External calendar, messaging or store failure. Potentially transient."""

    code = "gateway_error"

    def __init__(
        self,
        message: str,
        *,
        service: str = "unknown",
        retryable: bool = True,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details=details)
        self.service = service
        self.retryable = retryable
        self.status_code = status_code


class GatewayTimeout(GatewayError):
    """
    The gateway did not answer in time.

    The outcome is unknown: the remote side may or may not have applied the request.
    """

    code = "gateway_timeout"


class InternalInconsistency(ReconciliationError):
    """A compensating write failed; attendance and balance are out of sync."""

    code = "internal_inconsistency"
