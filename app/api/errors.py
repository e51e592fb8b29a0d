"""Maps progress engine errors onto HTTP responses.

Every error body has the same shape so clients can branch on ``code``
without parsing ``detail``:

  {"detail": "lesson 'x' not found", "code": "lesson_not_found"}

TransientStoreError becomes 503 with Retry-After; heartbeats are
idempotent under replay, so the player simply resends.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import (
    InvalidInputError,
    LessonNotFoundError,
    NotEnrolledError,
    ProgressError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 1

_STATUS_BY_ERROR: dict[type[ProgressError], int] = {
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    NotEnrolledError: status.HTTP_403_FORBIDDEN,
    LessonNotFoundError: status.HTTP_404_NOT_FOUND,
    TransientStoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _status_for(exc: ProgressError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def progress_error_handler(request: Request, exc: ProgressError) -> JSONResponse:
    status_code = _status_for(exc)
    headers = None
    if isinstance(exc, TransientStoreError):
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
        logger.warning(
            "Store unavailable for %s %s: %s", request.method, request.url.path, exc
        )
    else:
        logger.info(
            "Rejected %s %s code=%s: %s",
            request.method,
            request.url.path,
            exc.code,
            exc.message,
        )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies are the caller's fault, same as a negative position."""
    fields = ", ".join(
        ".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()
    )
    logger.info("Invalid request body for %s %s: %s", request.method, request.url.path, fields)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"invalid fields: {fields}", "code": InvalidInputError.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProgressError, progress_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
