"""
Exception handlers - map domain errors to HTTP responses.

Every error body has the shape {"error": message, ...details}. Rate limit
errors also carry a Retry-After header.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api.cors import cors_headers
from src.domain.exceptions import (
    AccessDenied,
    AccessError,
    AuthenticationFailed,
    Conflict,
    EmailDeliveryFailed,
    InvalidOTP,
    InvalidRequest,
    NotFound,
    RateLimited,
)

logger = logging.getLogger(__name__)

# Checked in order, so subclasses must precede their bases
STATUS_CODES: list[tuple[type[AccessError], int]] = [
    (InvalidRequest, status.HTTP_400_BAD_REQUEST),
    (AuthenticationFailed, status.HTTP_401_UNAUTHORIZED),
    (AccessDenied, status.HTTP_401_UNAUTHORIZED),
    (InvalidOTP, status.HTTP_401_UNAUTHORIZED),
    (RateLimited, status.HTTP_429_TOO_MANY_REQUESTS),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Conflict, status.HTTP_409_CONFLICT),
    (EmailDeliveryFailed, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(exc: AccessError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    status_code = status_code_for(exc)
    content = {"error": exc.message, **exc.details}
    headers = None

    if isinstance(exc, RateLimited) and exc.retry_after_seconds is not None:
        content["retryAfter"] = exc.retry_after_seconds
        headers = {"Retry-After": str(exc.retry_after_seconds)}

    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)

    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Report body validation failures as 400 with the offending field names.

    Field names are the JSON keys (camelCase) as the client sent them.
    """
    missing_fields: list[str] = []
    invalid_fields: list[str] = []

    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        field_name = location[0] if location else "body"
        target = missing_fields if error.get("type") == "missing" else invalid_fields
        if field_name not in target:
            target.append(field_name)

    message = "Missing required fields" if missing_fields else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": message,
            "missingFields": missing_fields,
            "invalidFields": invalid_fields,
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500; CORS headers are added here since the middleware never sees it."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
        headers=cors_headers(request.url.path),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AccessError, access_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
