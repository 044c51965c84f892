from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm_backend.config import settings
from crm_backend.engine.validation_gate import violations_from_error
from crm_backend.models import FieldViolation

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Operational error with a known status code and a client-safe message."""

    status_code: int = 500
    error: str = "Application Error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers

    def to_body(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message}


class ValidationError(AppError):
    status_code = 400
    error = "Validation Error"

    def __init__(self, message: str, details: list[FieldViolation] | None = None) -> None:
        super().__init__(message)
        self.details = details or []

    def to_body(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "details": [d.model_dump() for d in self.details],
        }


class InputRejected(ValidationError):
    """Raised by the validation gate. Nothing downstream of the gate runs."""

    error = "Invalid input"

    def __init__(self, details: list[FieldViolation]) -> None:
        super().__init__("Input validation failed", details)

    def to_body(self) -> dict[str, Any]:
        return {"error": self.error, "details": [d.model_dump() for d in self.details]}


class SecurityPatternDetected(InputRejected):
    """Gate rejection where at least one field matched a malicious-content heuristic."""


class RateLimitExceeded(AppError):
    status_code = 429

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message}


class PayloadTooLarge(AppError):
    status_code = 413

    def __init__(self) -> None:
        super().__init__("Request payload too large")

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message}


class DatabaseError(AppError):
    error = "Database Error"

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.original_error = original_error

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error, "message": "A database operation failed"}
        if settings.is_development and self.original_error is not None:
            body["details"] = str(self.original_error)
        return body


class BusinessLogicError(AppError):
    status_code = 422
    error = "Business Logic Error"


# ── handlers ────────────────────────────────────────────


def _client(request: Request) -> str | None:
    return request.client.host if request.client else None


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            type(exc).__name__, request.method, request.url.path, exc.message,
            exc_info=getattr(exc, "original_error", None),
        )
    else:
        logger.warning(
            "%s on %s %s from %s: %s",
            type(exc).__name__, request.method, request.url.path, _client(request), exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = violations_from_error(exc)
    return await app_error_handler(request, ValidationError("Invalid request data", details))


async def not_found_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and request.url.path.startswith("/api"):
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "message": f"Route {request.method} {request.url.path} not found",
            },
        )
    return await http_exception_handler(request, exc)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s (ip=%s, ua=%s)",
        request.method,
        request.url.path,
        _client(request),
        request.headers.get("user-agent"),
    )
    message = str(exc) if settings.is_development else "An unexpected error occurred"
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "message": message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, not_found_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


__all__ = [
    "AppError",
    "ValidationError",
    "InputRejected",
    "SecurityPatternDetected",
    "RateLimitExceeded",
    "PayloadTooLarge",
    "DatabaseError",
    "BusinessLogicError",
    "register_exception_handlers",
]
