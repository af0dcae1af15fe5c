"""Application error types and the handlers that render them.

Services raise these; the API layer never builds error responses by hand.
Response format:
{
    "error": {
        "code": "ERROR_CODE",
        "message": "Human-readable error message",
        "details": {...}  // optional
    }
}
"""

from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


class WarehouseError(Exception):
    """Base exception for warehouse domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, error_code: str | None = None, details: dict | None = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(WarehouseError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str, *, error_code: str | None = None):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}", error_code=error_code, details={"id": identifier})


class ConflictError(WarehouseError):
    """Request is well formed but the current state does not allow it."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"


class InvalidStateError(ConflictError):
    error_code = "INVALID_STATE"


class BusinessValidationError(WarehouseError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "VALIDATION_ERROR"


def create_error_response(status_code: int, message: str, error_code: str = "ERROR", details: dict | list | None = None) -> JSONResponse:
    content: dict = {"error": {"code": error_code, "message": message}}
    if details:
        content["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=content)


async def warehouse_exception_handler(request: Request, exc: WarehouseError) -> JSONResponse:
    logger.warning(
        "%s on %s %s: %s",
        exc.error_code,
        request.method,
        request.url.path,
        exc.message,
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": " -> ".join(str(loc) for loc in err["loc"]), "message": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    logger.warning("Validation error on %s %s", request.method, request.url.path)
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


async def operational_exception_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable on %s %s: %s", request.method, request.url.path, exc)
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable. Please try again.",
        "DATABASE_UNAVAILABLE",
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(WarehouseError, warehouse_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
