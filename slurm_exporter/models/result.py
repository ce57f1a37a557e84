from __future__ import annotations

from dataclasses import dataclass

from slurm_exporter.core.errors import FailureKind
from slurm_exporter.models.exposition import MetricFamily


@dataclass(frozen=True, slots=True)
class Success:
    families: tuple[MetricFamily, ...]


@dataclass(frozen=True, slots=True)
class Failure:
    kind: FailureKind
    detail: str


Outcome = Success | Failure


@dataclass(frozen=True, slots=True)
class EndpointResult:
    """What one endpoint produced during one scrape.

    Created fresh per scrape and thrown away once the response is written.
    """

    endpoint: str
    outcome: Outcome
    elapsed: float

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)

    @property
    def families(self) -> tuple[MetricFamily, ...]:
        if isinstance(self.outcome, Success):
            return self.outcome.families
        return ()


@dataclass(frozen=True, slots=True)
class ScrapeResult:
    """Aggregated output of one scrape plus the per-endpoint outcomes.

    families: every family from every successful endpoint, in endpoint
              declaration order, then appearance order within an endpoint.
    results:  one EndpointResult per enabled endpoint, in declaration order.
    """

    families: tuple[MetricFamily, ...]
    results: tuple[EndpointResult, ...]

    @property
    def outcomes(self) -> dict[str, Outcome]:
        return {r.endpoint: r.outcome for r in self.results}

    @property
    def failed(self) -> list[str]:
        return [r.endpoint for r in self.results if not r.ok]
