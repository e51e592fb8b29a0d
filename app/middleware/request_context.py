"""Request context middleware: a request id on every log line.

Heartbeats from many players interleave in the logs.  Each request gets an
id (the caller's X-Request-ID if present, else a UUID) stored in a
ContextVar, and a LogRecord factory stamps it onto every record created
while the request runs, whichever module logs it and whichever handler
ends up formatting it.  The id is
echoed back in the X-Request-ID response header so a player bug report
can be matched to server logs.

ContextVar rather than threading.local: requests share the event loop
thread, but each task gets its own copy of the variable.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LEN = 128

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


_base_record_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    record.request_id = request_id_var.get()  # type: ignore[attr-defined]
    return record


# Installed once per process; a module reload must not wrap the factory again
if not getattr(logging.getLogRecordFactory(), "_stamps_request_id", False):
    _record_factory._stamps_request_id = True  # type: ignore[attr-defined]
    logging.setLogRecordFactory(_record_factory)


def _incoming_request_id(request: Request) -> str:
    candidate = request.headers.get(REQUEST_ID_HEADER.lower(), "")
    if candidate and len(candidate) <= _MAX_REQUEST_ID_LEN and candidate.isprintable():
        return candidate
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, times the request and logs one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = _incoming_request_id(request)
        token = request_id_var.set(req_id)

        start = time.monotonic()
        try:
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            # request_id comes from the record factory; the extra fields are
            # picked up by _JsonFormatter when LOG_JSON=true
            logger.info(
                "%s %s → %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            response.headers[REQUEST_ID_HEADER] = req_id
            return response
        finally:
            request_id_var.reset(token)
