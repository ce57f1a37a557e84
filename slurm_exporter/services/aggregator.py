"""Scrape orchestration.

One scrape = one linear pass:  fetch all enabled endpoints → assemble →
hand the families to the writer.  Nothing survives between scrapes.

ASSEMBLY ORDER
---------------
Endpoints may be fetched concurrently, but the output is ordered by
endpoint declaration, then by family appearance within an endpoint.
asyncio.gather returns results in argument order regardless of which
fetch finished first, so results are simply assembled by index.

DUPLICATE FAMILY NAMES
-----------------------
Two endpoints exposing the same metric name are NOT merged: both blocks
are written, one after the other.  Strict readers of the exposition
format may warn about this.  Keeping upstream endpoints disjoint is the
upstream's job; the aggregator only logs a warning when it happens.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence

from slurm_exporter.core.config import EndpointSpec
from slurm_exporter.models.result import EndpointResult, ScrapeResult
from slurm_exporter.services.fetcher import EndpointFetcher

logger = logging.getLogger(__name__)


class Aggregator:
    def __init__(
        self,
        fetcher: EndpointFetcher,
        endpoints: Sequence[EndpointSpec],
        *,
        concurrent: bool = True,
    ) -> None:
        self._fetcher = fetcher
        self._endpoints = tuple(e for e in endpoints if e.enabled)
        self._concurrent = concurrent

    @property
    def endpoints(self) -> tuple[EndpointSpec, ...]:
        return self._endpoints

    async def scrape(self, timeout: float | None = None) -> ScrapeResult:
        """Fetch every enabled endpoint and assemble the merged output.

        Args:
            timeout: seconds the whole scrape may take; each endpoint's own
                     client timeout still applies inside it
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        start = time.monotonic()

        results = await self._fetch_all(deadline)

        families = tuple(family for result in results for family in result.families)
        scrape = ScrapeResult(families=families, results=tuple(results))
        _warn_on_duplicate_families(scrape)

        logger.info(
            "Scrape complete  endpoints=%d failed=%d families=%d (%.1fms)",
            len(results),
            len(scrape.failed),
            len(families),
            (time.monotonic() - start) * 1000,
        )
        return scrape

    async def _fetch_all(self, deadline: float | None) -> list[EndpointResult]:
        if self._concurrent:
            # If the scrape is cancelled, gather cancels every child fetch.
            return list(
                await asyncio.gather(
                    *(self._fetcher.fetch(endpoint, deadline) for endpoint in self._endpoints)
                )
            )

        results: list[EndpointResult] = []
        for endpoint in self._endpoints:
            results.append(await self._fetcher.fetch(endpoint, deadline))
        return results


def _warn_on_duplicate_families(scrape: ScrapeResult) -> None:
    owner: dict[str, str] = {}
    for result in scrape.results:
        for family in result.families:
            first = owner.setdefault(family.name, result.endpoint)
            if first != result.endpoint:
                logger.warning(
                    "Metric family %s is exposed by both %s and %s; "
                    "both blocks are kept in the output",
                    family.name,
                    first,
                    result.endpoint,
                    extra={"endpoint": result.endpoint},
                )
