"""The exporter's own metrics.

Everything the exporter measures about itself lives here, in one
inventory.  Unlike the upstream metrics it relays, these are produced
locally with prometheus_client and appended to every /metrics response.

WHY NOT THE GLOBAL REGISTRY
-----------------------------
prometheus_client registers metrics on a process-wide default registry,
and registering the same name twice raises.  Two exporter apps in one
process (every test that builds an app) would collide.  ExporterMetrics
owns a private CollectorRegistry instead; one instance is built per app
and handed to whoever needs to record something.

All recording methods are single additive or idempotent operations
(inc, observe, set), so concurrent scrapes can share one instance.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from slurm_exporter.core.config import BuildInfo

NAMESPACE = "slurm_exporter"

# Upstream endpoints answer in tens of milliseconds when healthy; the
# long tail exists so slow controllers show up before they time out.
SCRAPE_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class ExporterMetrics:
    def __init__(self, build: BuildInfo, *, process_collectors: bool = True) -> None:
        self.registry = CollectorRegistry()

        self.build_info = Gauge(
            f"{NAMESPACE}_build_info",
            "A metric with a constant '1' value labeled by version, git_commit, and build_time",
            ["version", "git_commit", "build_time"],
            registry=self.registry,
        )
        self.build_info.labels(
            version=build.version,
            git_commit=build.git_commit,
            build_time=build.build_time,
        ).set(1)

        self.scrape_duration = Histogram(
            f"{NAMESPACE}_scrape_duration_seconds",
            "Duration of scrapes by the exporter",
            ["endpoint"],
            buckets=SCRAPE_BUCKETS,
            registry=self.registry,
        )
        self.scrape_success = Gauge(
            f"{NAMESPACE}_scrape_success",
            "Whether the last scrape was successful (1 = success, 0 = failure)",
            ["endpoint"],
            registry=self.registry,
        )
        self.scrape_errors = Counter(
            f"{NAMESPACE}_scrape_errors",
            "Total number of scrape errors by endpoint",
            ["endpoint"],
            registry=self.registry,
        )

        self.http_requests = Counter(
            f"{NAMESPACE}_http_requests",
            "Total number of HTTP requests received by the exporter",
            ["method", "path", "status"],
            registry=self.registry,
        )
        self.http_request_duration = Histogram(
            f"{NAMESPACE}_http_request_duration_seconds",
            "Duration of HTTP requests",
            ["method", "path"],
            registry=self.registry,
        )

        if process_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

    # ------------------------------------------------------------------
    # Per-endpoint scrape outcome (called by the fetcher)
    # ------------------------------------------------------------------

    def observe_duration(self, endpoint: str, seconds: float) -> None:
        self.scrape_duration.labels(endpoint=endpoint).observe(seconds)

    def set_success(self, endpoint: str, ok: bool) -> None:
        self.scrape_success.labels(endpoint=endpoint).set(1 if ok else 0)

    def increment_errors(self, endpoint: str) -> None:
        self.scrape_errors.labels(endpoint=endpoint).inc()

    # ------------------------------------------------------------------
    # HTTP boundary (called by MetricsMiddleware)
    # ------------------------------------------------------------------

    def observe_http_request(self, method: str, path: str, status: int, seconds: float) -> None:
        self.http_requests.labels(method=method, path=path, status=str(status)).inc()
        self.http_request_duration.labels(method=method, path=path).observe(seconds)

    def render(self) -> bytes:
        """All self-metrics in the text exposition format."""
        return generate_latest(self.registry)
