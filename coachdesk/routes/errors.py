"""
HTTP mapping for the reconciliation error taxonomy, and the 200/207 choice
for batch endpoints.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from coachdesk.errors import (
    ConflictError,
    GatewayError,
    GatewayTimeout,
    InsufficientCredit,
    InternalInconsistency,
    NotFoundError,
    ReconciliationError,
    ValidationError,
)
from coachdesk.infrastructure.observability.logging import get_logger
from coachdesk.models.api.responses import ErrorResponse

logger = get_logger(__name__)

# Checked in order; subclasses first
STATUS_BY_ERROR: list[tuple[type[ReconciliationError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InsufficientCredit, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (GatewayTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (GatewayError, status.HTTP_502_BAD_GATEWAY),
    (InternalInconsistency, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def http_status_for(error: ReconciliationError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def reconciliation_error_handler(request: Request, exc: ReconciliationError) -> JSONResponse:
    status_code = http_status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "Request failed",
        path=request.url.path,
        status_code=status_code,
        error_code=exc.code,
        error=exc.message,
    )
    body = ErrorResponse(error=exc.message, code=exc.code, details=exc.details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReconciliationError, reconciliation_error_handler)


def batch_response(body: BaseModel, *, has_failures: bool) -> JSONResponse:
    """200 when every item succeeded, 207 when some failed. The body is the same."""
    status_code = status.HTTP_207_MULTI_STATUS if has_failures else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
