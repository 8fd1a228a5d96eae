"""Request correlation middleware.

Accepts an incoming X-Request-ID (or generates one), binds it to the logging
context for the duration of the request, and echoes it on the response.
"""
from __future__ import annotations

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..logging_config import generate_request_id, request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Correlation IDs and request timing."""

    def __init__(self, app, exclude_paths: list[str] | None = None):
        super().__init__(app)
        self.exclude_paths = set(exclude_paths or ["/health"])

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
        request_id = incoming[:MAX_REQUEST_ID_LENGTH] if incoming else generate_request_id()
        token = request_id_var.set(request_id)
        try:
            return await self._timed(request, call_next, request_id)
        finally:
            request_id_var.reset(token)

    async def _timed(self, request: Request, call_next, request_id: str) -> Response:
        path = request.url.path
        log_level = logging.DEBUG if path in self.exclude_paths else logging.INFO
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "event": "request_error",
                    "method": request.method,
                    "path": path,
                    "error_type": type(e).__name__,
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                },
                exc_info=True,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        context = {
            "event": "request_complete",
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }
        if response.status_code >= 500:
            logger.error("Request completed with server error", extra=context)
        elif response.status_code >= 400:
            logger.warning("Request completed with client error", extra=context)
        else:
            logger.log(log_level, "Request completed", extra=context)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response
