"""
Request logging middleware with correlation ID support.

Each request gets a correlation ID bound into the structlog context, so every
event logged while handling it (challenge_issued, claim_rejected, ...) can be
tied back to the request. The ID is echoed in the X-Correlation-ID header.

Privacy: request bodies carry claim codes and are never logged, nor are IPs
or Authorization headers.
"""

import re
import secrets
import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "X-Correlation-ID"
_CORRELATION_ID_PATTERN = re.compile(r"^[a-f0-9]{8,32}$")


def generate_correlation_id() -> str:
    """Generate an 8-character correlation ID."""
    return secrets.token_hex(4)


def get_correlation_id() -> str | None:
    """The correlation ID of the request being handled, if any."""
    return structlog.contextvars.get_contextvars().get("correlation_id")


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs request_started / request_completed / request_failed with timing.

    A well-formed correlation ID sent by an upstream proxy is reused, so one
    ID can follow a request across services.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(CORRELATION_HEADER, "").lower()
        if _CORRELATION_ID_PATTERN.match(incoming):
            correlation_id = incoming
        else:
            correlation_id = generate_correlation_id()
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        logger = structlog.get_logger()
        logger.info("request_started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
