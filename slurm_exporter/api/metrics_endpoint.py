"""Prometheus metrics endpoint.

One GET /metrics = one scrape of every enabled upstream endpoint.  The
response body is the merged, relabelled upstream exposition followed by
the exporter's own metrics, e.g.:

  # HELP slurm_nodes_idle Number of idle nodes
  # TYPE slurm_nodes_idle gauge
  slurm_nodes_idle{cluster="c1"} 5
  ...
  # HELP slurm_exporter_scrape_success Whether the last scrape was successful ...
  # TYPE slurm_exporter_scrape_success gauge
  slurm_exporter_scrape_success{endpoint="nodes"} 1.0

The status is 200 even when some (or all) upstream endpoints failed:
degradation is reported through slurm_exporter_scrape_success and
slurm_exporter_scrape_errors_total, not through a failed scrape.

If the scraper disconnects before the upstream fetches finish, the
scrape is cancelled; no fetch keeps running for an abandoned request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse

from slurm_exporter.api.dependencies import get_aggregator, get_exporter_metrics, get_settings
from slurm_exporter.core.config import Settings
from slurm_exporter.core.metrics import ExporterMetrics
from slurm_exporter.models.result import ScrapeResult
from slurm_exporter.services.aggregator import Aggregator
from slurm_exporter.services.writer import iter_exposition

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    aggregator: Annotated[Aggregator, Depends(get_aggregator)],
    exporter_metrics: Annotated[ExporterMetrics, Depends(get_exporter_metrics)],
) -> Response:
    """Scrape all upstream endpoints and expose the merged result."""
    scrape = await _scrape_until_disconnect(
        request, aggregator, settings.server.scrape_timeout
    )
    if scrape is None:
        # Nobody is listening any more.
        return Response(status_code=204)

    return StreamingResponse(
        _stream_body(scrape, exporter_metrics),
        media_type=CONTENT_TYPE,
    )


def _stream_body(scrape: ScrapeResult, exporter_metrics: ExporterMetrics) -> Iterator[bytes]:
    for chunk in iter_exposition(scrape.families):
        yield chunk.encode("utf-8")
    # Rendered after the scrape so the success gauges describe this scrape.
    yield exporter_metrics.render()


async def _scrape_until_disconnect(
    request: Request, aggregator: Aggregator, timeout: float
) -> ScrapeResult | None:
    scrape_task = asyncio.create_task(aggregator.scrape(timeout=timeout))
    disconnect_task = asyncio.create_task(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait(
            {scrape_task, disconnect_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if scrape_task in done:
            return scrape_task.result()

        logger.info("Client disconnected; abandoning scrape")
        return None
    finally:
        for task in (scrape_task, disconnect_task):
            task.cancel()
        # Wait for cancelled fetches to unwind before the request ends.
        await asyncio.wait({scrape_task, disconnect_task})


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return
