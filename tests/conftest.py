from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import slurm_exporter` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from slurm_exporter.core.config import BuildInfo, Settings, parse_settings  # noqa: E402
from slurm_exporter.core.metrics import ExporterMetrics  # noqa: E402
from slurm_exporter.main import create_app  # noqa: E402

BASE_URL = "http://slurm.test:8080"

TEST_BUILD = BuildInfo(version="1.0.0", git_commit="abc1234", build_time="2026-01-01")

NODES_BODY = """\
# HELP slurm_nodes_idle Number of idle nodes
# TYPE slurm_nodes_idle gauge
slurm_nodes_idle 5
# HELP slurm_nodes_alloc Number of allocated nodes
# TYPE slurm_nodes_alloc gauge
slurm_nodes_alloc 12
"""

JOBS_BODY = """\
# HELP slurm_jobs_pending Pending jobs by partition
# TYPE slurm_jobs_pending gauge
slurm_jobs_pending{partition="debug"} 3
slurm_jobs_pending{partition="batch"} 41
"""

SCHEDULER_BODY = """\
# HELP slurm_scheduler_threads Scheduler thread count
# TYPE slurm_scheduler_threads gauge
slurm_scheduler_threads 3
"""


class FakeUpstream:
    """Stand-in for the Slurm REST endpoints, served through httpx.MockTransport.

    routes maps a URL path to either (status, body) or an exception to raise.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Any] = {"/": (200, "ok")}
        self.requests: list[str] = []

    def serve(self, path: str, body: str, status: int = 200) -> None:
        self.routes[path] = (status, body)

    def fail(self, path: str, exc: Exception) -> None:
        self.routes[path] = exc

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        status, body = route
        return httpx.Response(status, text=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_config(**overrides: Any) -> dict[str, Any]:
    """A valid raw config mapping; top-level keys can be replaced."""
    config: dict[str, Any] = {
        "slurm": {"url": BASE_URL, "timeout": "5s"},
        "server": {"port": 9341},
        "endpoints": [
            {"name": "nodes", "path": "/metrics/nodes", "enabled": True},
            {"name": "jobs", "path": "/metrics/jobs", "enabled": True},
            {"name": "scheduler", "path": "/metrics/scheduler", "enabled": True},
        ],
        "labels": {"cluster": "c1"},
        "logging": {"level": "info", "output": "stdout"},
    }
    config.update(overrides)
    return config


def make_settings(**overrides: Any) -> Settings:
    return parse_settings(make_config(**overrides))


@pytest.fixture
def upstream() -> FakeUpstream:
    fake = FakeUpstream()
    fake.serve("/metrics/nodes", NODES_BODY)
    fake.serve("/metrics/jobs", JOBS_BODY)
    fake.serve("/metrics/scheduler", SCHEDULER_BODY)
    return fake


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def exporter_metrics() -> ExporterMetrics:
    return ExporterMetrics(TEST_BUILD, process_collectors=False)


@pytest.fixture
def client(settings: Settings, upstream: FakeUpstream) -> Iterator[TestClient]:
    app = create_app(
        settings, transport=upstream.transport, build=TEST_BUILD, process_collectors=False
    )
    # The context manager runs the lifespan (HTTP client, aggregator).
    with TestClient(app) as test_client:
        yield test_client


def sample_value(client: TestClient, name: str, labels: dict[str, str] | None = None) -> float | None:
    """Read a self-metric from the app's private registry."""
    registry = client.app.state.exporter_metrics.registry  # type: ignore[attr-defined]
    return registry.get_sample_value(name, labels=labels or {})
