"""
Exception handlers producing the API error envelope.

Every error body has the same shape:
    {"error_code": ..., "message": ..., "details": ..., "request_id": ...}
"""

import uuid
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from question_engine.core.app_exceptions import AppError
from question_engine.core.config import settings
from question_engine.core.logging import get_logger

logger = get_logger(__name__)


class ErrorResponse(BaseModel):
    error_code: str
    message: str
    details: Any | None = None
    request_id: str | None = None


def get_request_id(request: Request) -> str:
    """Id set by RequestIDMiddleware, or a fresh one outside it."""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error_code=error_code,
        message=message,
        details=details,
        request_id=get_request_id(request),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body or query failed schema validation (422)."""
    details = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", [])),
            "issue": error.get("msg", "Validation error"),
            "type": error.get("type", "validation_error"),
        }
        for error in exc.errors()
    ]
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Invalid request data",
        details,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """AppError subclasses keep their code; plain HTTPExceptions become HTTP_ERROR."""
    if isinstance(exc, AppError):
        response = error_response(request, exc.status_code, exc.code, exc.message, exc.details)
        retry_after = exc.details.get("retry_after_seconds") if isinstance(exc.details, dict) else None
        if retry_after:
            response.headers["Retry-After"] = str(retry_after)
        return response

    if isinstance(exc.detail, dict):
        return error_response(
            request,
            exc.status_code,
            "HTTP_ERROR",
            str(exc.detail.get("message", "An error occurred")),
            exc.detail,
        )
    return error_response(request, exc.status_code, "HTTP_ERROR", str(exc.detail))


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Invalid arguments raised below the request schema, such as malformed ids (422)."""
    return error_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_ARGUMENT", str(exc))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unhandled (500). Internals are hidden in production."""
    request_id = get_request_id(request)
    logger.error(
        f"Unhandled {type(exc).__name__}",
        extra={"event": "unhandled_exception", "request_id": request_id, "error": str(exc)},
        exc_info=exc,
    )

    if settings.ENV == "prod":
        return error_response(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "An internal server error occurred"
        )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        str(exc),
        {"type": type(exc).__name__},
    )
