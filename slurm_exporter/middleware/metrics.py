"""HTTP self-instrumentation middleware.

Counts every request the exporter serves (by method, path and status)
and records its duration.  /metrics is included: scrapes are the
exporter's main traffic, and a slow /metrics is exactly what an
operator wants to see.

The metrics object is the per-app ExporterMetrics on app.state, never
a module-level global.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from slurm_exporter.core.metrics import ExporterMetrics


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record request count and duration for every HTTP request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        metrics: ExporterMetrics = request.app.state.exporter_metrics
        start = time.monotonic()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            # An unhandled exception still becomes a 500 for the client.
            metrics.observe_http_request(
                request.method,
                request.url.path,
                status_code,
                time.monotonic() - start,
            )

        return response
