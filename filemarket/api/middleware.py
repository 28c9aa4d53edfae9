"""Request correlation middleware.

Every request gets an ``X-Request-ID``: the caller's value when it looks
sane, a fresh UUID otherwise. The id is bound into the structlog context
for the duration of the request and echoed on the response.
"""

import re
import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_request_id(incoming: str | None) -> str:
    """Caller-supplied id if well-formed, otherwise a new one."""
    if incoming and _REQUEST_ID_PATTERN.match(incoming):
        return incoming
    return str(uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request id, method and path into the log context."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            logger.info(
                "Request completed",
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def setup_middleware(app: FastAPI) -> None:
    """Install request correlation on ``app``."""
    app.add_middleware(RequestContextMiddleware)
