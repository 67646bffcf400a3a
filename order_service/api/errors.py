# order_service/api/errors.py
"""
Translate typed order failures into JSON error responses.

    OrderValidationError        -> 400
    InvalidTransitionError      -> 400
    OrderNotFoundError          -> 404
    ConcurrentModificationError -> 409
    request shape errors        -> 422
    anything else               -> 500 (generic message, traceback logged)
"""
import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from order_service.api.schemas.order import ErrorOut, FieldErrorOut
from order_service.core.errors import (
    ConcurrentModificationError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderServiceError,
    OrderValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_FOR = [
    (OrderValidationError, HTTPStatus.BAD_REQUEST, "Order Validation Failed"),
    (InvalidTransitionError, HTTPStatus.BAD_REQUEST, "Invalid Order Status"),
    (OrderNotFoundError, HTTPStatus.NOT_FOUND, "Not Found"),
    (ConcurrentModificationError, HTTPStatus.CONFLICT, "Conflict"),
]


def _error_response(request: Request, status: HTTPStatus, error: str, kind: str, message: str,
                    validation_errors: Optional[List[FieldErrorOut]] = None) -> JSONResponse:
    payload = ErrorOut(
        timestamp=datetime.now(timezone.utc),
        status=int(status),
        error=error,
        kind=kind,
        message=message,
        path=request.url.path,
        validation_errors=validation_errors,
    )
    return JSONResponse(status_code=int(status), content=payload.body())


async def order_error_handler(request: Request, exc: OrderServiceError) -> JSONResponse:
    for exc_type, status, error in _STATUS_FOR:
        if isinstance(exc, exc_type):
            logger.warning("%s: %s", error, exc.message)
            field_errors = None
            if isinstance(exc, OrderValidationError) and exc.field:
                field_errors = [FieldErrorOut(field=exc.field, message=exc.message,
                                              rejected_value=None if exc.rejected_value is None
                                              else str(exc.rejected_value))]
            return _error_response(request, status, error, exc.kind, exc.message, field_errors)
    # InfrastructureError and any future subclass
    logger.error("Order operation failed: %s", exc.message, exc_info=exc)
    return _error_response(request, HTTPStatus.INTERNAL_SERVER_ERROR, HTTPStatus.INTERNAL_SERVER_ERROR.phrase,
                           exc.kind, "An unexpected error occurred. Please try again later.")


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Validation failed: %s", exc.errors())
    field_errors = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        value = err.get("input")
        field_errors.append(FieldErrorOut(
            field=".".join(loc) or "request",
            rejected_value=None if value is None or isinstance(value, (dict, list)) else str(value),
            message=err.get("msg", "invalid value"),
        ))
    return _error_response(request, HTTPStatus.UNPROCESSABLE_ENTITY, "Validation Failed", "FieldConstraint",
                           "Invalid request parameters", field_errors)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unexpected error occurred", exc_info=exc)
    return _error_response(request, HTTPStatus.INTERNAL_SERVER_ERROR, HTTPStatus.INTERNAL_SERVER_ERROR.phrase,
                           "Internal", "An unexpected error occurred. Please try again later.")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderServiceError, order_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
