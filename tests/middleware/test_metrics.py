"""Tests for the HTTP self-instrumentation middleware.

Every app owns a private registry, so unlike the process-wide default
registry the counters start from zero in each test and can be asserted
on directly.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import sample_value


def test_request_counter_increments(client: TestClient) -> None:
    client.get("/health")
    client.get("/health")
    assert (
        sample_value(
            client,
            "slurm_exporter_http_requests_total",
            {"method": "GET", "path": "/health", "status": "200"},
        )
        == 2.0
    )


def test_request_duration_histogram_observes(client: TestClient) -> None:
    client.get("/health")
    assert (
        sample_value(
            client,
            "slurm_exporter_http_request_duration_seconds_count",
            {"method": "GET", "path": "/health"},
        )
        == 1.0
    )


def test_metrics_endpoint_is_instrumented(client: TestClient) -> None:
    client.get("/metrics")
    assert (
        sample_value(
            client,
            "slurm_exporter_http_requests_total",
            {"method": "GET", "path": "/metrics", "status": "200"},
        )
        == 1.0
    )


def test_status_label_reflects_response(client: TestClient) -> None:
    client.get("/does-not-exist")
    assert (
        sample_value(
            client,
            "slurm_exporter_http_requests_total",
            {"method": "GET", "path": "/does-not-exist", "status": "404"},
        )
        == 1.0
    )
