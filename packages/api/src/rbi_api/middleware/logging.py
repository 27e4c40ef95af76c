"""Structured request logging with a per-request id bound into structlog."""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs one ``request_completed`` event per request. The request id (taken
    from the incoming header or generated) is bound to structlog's context
    vars, so store and job events emitted while serving the request carry it.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.monotonic()
        log = logger.bind(method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as exc:
            log.error(
                "request_failed",
                error=str(exc),
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        elapsed_ms = round((time.monotonic() - start) * 1000, 2)
        level = "error" if response.status_code >= 500 else "info"
        getattr(log, level)(
            "request_completed",
            status=response.status_code,
            duration_ms=elapsed_ms,
            request_id=request_id,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
