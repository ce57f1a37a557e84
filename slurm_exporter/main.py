from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI

from slurm_exporter.api.dependencies import require_basic_auth
from slurm_exporter.api.health import router as health_router
from slurm_exporter.api.landing import router as landing_router
from slurm_exporter.api.metrics_endpoint import router as metrics_router
from slurm_exporter.core.config import VERSION, BuildInfo, Settings, load_build_info
from slurm_exporter.core.metrics import ExporterMetrics
from slurm_exporter.middleware.metrics import MetricsMiddleware
from slurm_exporter.middleware.request_context import (
    RequestContextMiddleware,
    install_request_context_filter,
)
from slurm_exporter.services.aggregator import Aggregator
from slurm_exporter.services.fetcher import EndpointFetcher, check_upstream

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    build: BuildInfo | None = None,
    process_collectors: bool = True,
) -> FastAPI:
    """Build the exporter application.

    Everything stateful (settings, self-metrics, HTTP client, aggregator)
    hangs off app.state, so several apps can live in one process.

    Args:
        settings: validated configuration
        transport: httpx transport for upstream requests (tests pass a
                   MockTransport; None means real network I/O)
        build: version metadata for slurm_exporter_build_info
        process_collectors: also expose process/platform/gc metrics
    """
    exporter_metrics = ExporterMetrics(
        build or load_build_info(), process_collectors=process_collectors
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if settings.slurm.tls_insecure_verify:
            logger.warning(
                "TLS certificate verification is disabled - this is insecure "
                "and should only be used for testing"
            )

        async with httpx.AsyncClient(
            timeout=settings.slurm.timeout,
            verify=not settings.slurm.tls_insecure_verify,
            follow_redirects=True,
            transport=transport,
        ) as client:
            fetcher = EndpointFetcher(
                client, settings.slurm.url, settings.labels, exporter_metrics
            )
            app.state.http_client = client
            app.state.aggregator = Aggregator(
                fetcher, settings.endpoints, concurrent=settings.slurm.concurrent
            )

            problem = await check_upstream(client, settings.slurm.url)
            if problem is None:
                logger.info("Slurm API health check passed  url=%s", settings.slurm.url)
            else:
                logger.warning(
                    "Slurm API health check failed, but continuing anyway  url=%s: %s",
                    settings.slurm.url,
                    problem,
                )

            logger.info(
                "Exporter is ready  port=%d endpoints=%d",
                settings.server.port,
                len(settings.enabled_endpoints),
            )
            yield

    app = FastAPI(
        title="slurm-exporter",
        version=VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        dependencies=[Depends(require_basic_auth)],
    )
    app.state.settings = settings
    app.state.exporter_metrics = exporter_metrics

    # Middleware execution order: last-added runs first (outermost layer).
    # RequestContext (outermost) → Metrics → route handler
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)
    install_request_context_filter()

    app.include_router(landing_router)
    app.include_router(metrics_router)
    app.include_router(health_router)

    return app
