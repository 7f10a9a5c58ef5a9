"""Prometheus metrics for the store platform.

Metric naming follows Prometheus conventions. HTTP metrics are recorded by
``AccessMiddleware``; store lifecycle metrics by the orchestrator.

Usage::

    from store_platform.observability.metrics import STORE_PROVISIONING_TOTAL

    STORE_PROVISIONING_TOTAL.labels(engine="woocommerce", outcome="ready").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "http_server_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "http_server_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Store lifecycle metrics
# ---------------------------------------------------------------------------

STORE_PROVISIONING_TOTAL = Counter(
    "store_platform_provisioning_total",
    "Finished provisioning sequences by engine and outcome.",
    labelnames=["engine", "outcome"],
    registry=REGISTRY,
)

STORE_PROVISIONING_DURATION_SECONDS = Histogram(
    "store_platform_provisioning_duration_seconds",
    "Wall time of provisioning sequences.",
    labelnames=["engine", "outcome"],
    buckets=(5, 15, 30, 60, 120, 300, 600, 900, 1800),
    registry=REGISTRY,
)

STORE_DELETIONS_TOTAL = Counter(
    "store_platform_deletions_total",
    "Store deletions by outcome.",
    labelnames=["outcome"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
