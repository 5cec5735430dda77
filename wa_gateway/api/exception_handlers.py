"""
Exception handlers for FastAPI application.

This module follows SRP by centralizing all exception handling logic.
Gateway errors are mapped by type onto HTTP status codes.
"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from wa_gateway.integrations.providers.exceptions import (
    CandidatesExhaustedError,
    CredentialsMissingError,
    GatewayError,
    SessionNotFoundError,
    UnsupportedOperationError,
    VendorRejectedError,
    VendorUnreachableError,
)
from wa_gateway.services.instance.exceptions import SessionNotLinkedError, TenantNotFoundError

logger = logging.getLogger(__name__)

# Most specific first: SessionNotFoundError is a VendorRejectedError
GATEWAY_ERROR_STATUS: tuple[tuple[type[GatewayError], int], ...] = (
    (CredentialsMissingError, status.HTTP_400_BAD_REQUEST),
    (SessionNotLinkedError, status.HTTP_400_BAD_REQUEST),
    (TenantNotFoundError, status.HTTP_404_NOT_FOUND),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (UnsupportedOperationError, status.HTTP_501_NOT_IMPLEMENTED),
    (CandidatesExhaustedError, status.HTTP_502_BAD_GATEWAY),
    (VendorRejectedError, status.HTTP_502_BAD_GATEWAY),
    (VendorUnreachableError, status.HTTP_504_GATEWAY_TIMEOUT),
)


def status_for_gateway_error(exc: GatewayError) -> int:
    for error_type, status_code in GATEWAY_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_502_BAD_GATEWAY


async def gateway_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render GatewayError subclasses with their mapped status and details."""
    if not isinstance(exc, GatewayError):
        return await global_exception_handler(request, exc)

    status_code = status_for_gateway_error(exc)
    log_level = logging.ERROR if status_code >= 500 else logging.WARNING
    logger.log(log_level, f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")

    content = {
        "error": True,
        "message": exc.message,
        "status_code": status_code,
        "kind": exc.kind,
    }
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle HTTPException with consistent response format."""
    http_exc = exc if isinstance(exc, HTTPException) else HTTPException(status_code=500, detail=str(exc))
    return JSONResponse(
        status_code=http_exc.status_code,
        content={
            "error": True,
            "message": http_exc.detail,
            "status_code": http_exc.status_code,
        },
        headers=http_exc.headers,
    )


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle request and model validation errors with field-level details."""
    if not isinstance(exc, (RequestValidationError, ValidationError)):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"error": True, "message": str(exc), "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY},
        )

    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(f"Validation error on {request.url.path}: {errors}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": True,
            "message": "Validation error",
            "details": errors,
            "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
        },
    )


async def value_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Bad input detected below the request model (e.g. empty session name)."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": True, "message": str(exc), "status_code": status.HTTP_400_BAD_REQUEST},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all unhandled exceptions.

    Logs the full exception with traceback and returns a safe error response.
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc!s}",
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": True,
            "message": "Internal server error",
            "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(GatewayError, gateway_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("Exception handlers registered")
