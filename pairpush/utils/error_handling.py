"""
Error handling utilities for pairpush.

Maps exceptions to the JSON error bodies returned by both services:
every failure is reported as ``{"error": <message>}``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pairpush.exceptions import PairPushError, ValidationError

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)


def error_message(e: BaseException) -> str:
    """Human-readable message for an exception, never empty."""
    if isinstance(e, PairPushError):
        return e.message or "Internal server error"
    return str(e) or "Internal server error"


def status_code_for(e: BaseException) -> int:
    if isinstance(e, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(e: BaseException, status_code: int | None = None) -> JSONResponse:
    """
    Format exception as an API error response.

    Args:
        e: Exception to report
        status_code: Explicit status; derived from the exception type when omitted

    Returns:
        JSONResponse with body ``{"error": message}``
    """
    return JSONResponse(
        status_code=status_code or status_code_for(e),
        content={"error": error_message(e)},
    )


def log_context(e: BaseException) -> dict[str, object]:
    """Structured log fields for an exception."""
    fields: dict[str, object] = {"error_type": type(e).__name__}
    if isinstance(e, PairPushError) and e.context:
        fields.update({f"ctx_{key}": value for key, value in e.context.items()})
    return fields


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        message = err.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "Invalid request body" + (f" ({'; '.join(parts)})" if parts else "")


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON or wrongly typed fields are client errors (400), like missing fields."""
    message = _describe_validation_errors(exc)
    logger.warning("Request validation failed", extra={"path": request.url.path, "error": message})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def pairpush_error_handler(request: Request, exc: PairPushError) -> JSONResponse:
    logger.error(
        "Unhandled application error",
        extra={"path": request.url.path, "error": exc.message, **log_context(exc)},
    )
    return error_response(exc)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error mapping on an application."""
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PairPushError, pairpush_error_handler)  # type: ignore[arg-type]
