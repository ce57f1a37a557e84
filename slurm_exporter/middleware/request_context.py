"""Request context middleware — assigns a unique ID to every request.

Scrapes from several Prometheus servers can overlap, and each one logs
per-endpoint fetch errors.  The request ID ties those lines back to the
scrape that produced them:

  ERROR [req-abc] Failed to collect metrics from endpoint jobs (status)
  INFO  [req-xyz] Scrape complete  endpoints=3 failed=0
  INFO  [req-abc] Scrape complete  endpoints=3 failed=1

The ID lives in a ContextVar, so it follows the request through every
await, including the concurrently running endpoint fetches (asyncio
tasks copy the current context when they are created).
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

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _RequestContextFilter(logging.Filter):
    """Stamp the current request ID onto every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


def install_request_context_filter() -> None:
    # Filters on a logger do not apply to records from its children, so
    # the filter goes on the root handlers as well as the root logger.
    root_logger = logging.getLogger()
    targets: list[logging.Filterer] = [root_logger, *root_logger.handlers]
    for target in targets:
        if not any(isinstance(f, _RequestContextFilter) for f in target.filters):
            target.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, and log a completion line.

    1. Reads X-Request-ID (if the client sent one) or generates a UUID
    2. Stores it in a ContextVar for the rest of the request
    3. Logs method, path, status and duration on completion
    4. Echoes the ID back in the X-Request-ID response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(req_id)

        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

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
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = req_id
        return response
