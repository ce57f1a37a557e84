"""Per-endpoint fetch: GET <base><path>, parse, relabel.

One call, one EndpointResult.  Whatever goes wrong (unreachable
upstream, non-200, broken body, unparseable text) is caught here and
turned into a Failure outcome, so the aggregator never sees an
exception for a single bad endpoint.

Two clocks bound every fetch, and the first to expire wins:
  - the httpx client timeout (slurm.timeout in the config)
  - the scrape deadline shared by all endpoints of one /metrics request

Cancellation (the scraper hung up) is not a failure: CancelledError
propagates untouched so the whole scrape unwinds promptly.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping

import httpx

from slurm_exporter.core.config import EndpointSpec
from slurm_exporter.core.errors import (
    ConnectFailure,
    ReadFailure,
    ScrapeError,
    UnexpectedStatus,
)
from slurm_exporter.core.metrics import ExporterMetrics
from slurm_exporter.models.exposition import MetricFamily
from slurm_exporter.models.result import EndpointResult, Failure, Success
from slurm_exporter.services.labels import inject_labels
from slurm_exporter.services.parser import parse_exposition

logger = logging.getLogger(__name__)


class EndpointFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        extra_labels: Mapping[str, str],
        metrics: ExporterMetrics,
    ) -> None:
        self._client = client
        self._base_url = base_url
        self._extra_labels = extra_labels
        self._metrics = metrics

    def url_for(self, endpoint: EndpointSpec) -> str:
        return self._base_url + endpoint.path

    async def fetch(self, endpoint: EndpointSpec, deadline: float | None = None) -> EndpointResult:
        """Fetch one endpoint.

        Args:
            endpoint: which endpoint to scrape
            deadline: absolute event-loop time (loop.time()) after which
                      the fetch is abandoned; None means only the client
                      timeout applies
        """
        start = time.monotonic()
        try:
            families = await self._fetch_families(endpoint, deadline)
        except ScrapeError as exc:
            elapsed = time.monotonic() - start
            self._metrics.observe_duration(endpoint.name, elapsed)
            self._metrics.set_success(endpoint.name, False)
            self._metrics.increment_errors(endpoint.name)
            logger.error(
                "Failed to collect metrics from endpoint %s (%s): %s",
                endpoint.name,
                exc.kind.value,
                exc,
                extra={
                    "endpoint": endpoint.name,
                    "url": self.url_for(endpoint),
                    "error_kind": exc.kind.value,
                },
            )
            return EndpointResult(
                endpoint=endpoint.name,
                outcome=Failure(kind=exc.kind, detail=str(exc)),
                elapsed=elapsed,
            )

        elapsed = time.monotonic() - start
        self._metrics.observe_duration(endpoint.name, elapsed)
        self._metrics.set_success(endpoint.name, True)
        return EndpointResult(
            endpoint=endpoint.name,
            outcome=Success(families=tuple(families)),
            elapsed=elapsed,
        )

    async def _fetch_families(
        self, endpoint: EndpointSpec, deadline: float | None
    ) -> list[MetricFamily]:
        url = self.url_for(endpoint)
        logger.debug(
            "Fetching metrics from %s", url, extra={"endpoint": endpoint.name, "url": url}
        )

        try:
            async with asyncio.timeout_at(deadline):
                body = await self._get(url)
        except TimeoutError:
            # The scrape deadline fired; whatever was read so far is dropped.
            raise ConnectFailure(f"scrape deadline exceeded fetching {url}") from None

        families = parse_exposition(body, source=endpoint.name)
        return list(inject_labels(families, self._extra_labels))

    async def _get(self, url: str) -> bytes:
        try:
            async with self._client.stream("GET", url) as response:
                if response.status_code != httpx.codes.OK:
                    raise UnexpectedStatus(response.status_code)
                try:
                    return await response.aread()
                except httpx.TimeoutException as exc:
                    raise ConnectFailure(f"timed out reading response: {exc}") from exc
                except httpx.HTTPError as exc:
                    raise ReadFailure(f"failed to read response: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise ConnectFailure(f"timed out fetching {url}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ConnectFailure(f"failed to fetch {url}: {exc}") from exc


async def check_upstream(client: httpx.AsyncClient, url: str) -> str | None:
    """Probe the upstream base URL.

    Returns None when it answers with a 2xx/3xx status, otherwise a short
    description of what went wrong.
    """
    try:
        response = await client.get(url)
    except httpx.HTTPError as exc:
        return f"upstream is not reachable: {exc}"
    if response.status_code < 200 or response.status_code >= 400:
        return f"upstream returned unexpected status code: {response.status_code}"
    return None
