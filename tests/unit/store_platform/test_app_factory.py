"""Unit tests for the store platform app factory.

Tests:
  1. create_app() with local settings returns a working ASGI app
  2. Settings validation errors abort construction
  3. In-memory cluster is used for local mode, Kubernetes client otherwise
  4. Service index, health probes and metrics endpoints
  5. Request-ID generation and propagation
  6. Unhandled errors render the INTERNAL_ERROR envelope
"""

import pytest
from fastapi.testclient import TestClient

from store_platform.app.inmemory import InMemoryClusterClient
from store_platform.app.main import SERVICE_NAME, AppDependencies, create_app
from store_platform.app.providers.cluster_client import KubernetesClusterClient
from store_platform.app.settings import StorePlatformSettings


def _local_settings(**overrides) -> StorePlatformSettings:
    defaults = {"environment": "local"}
    defaults.update(overrides)
    return StorePlatformSettings(**defaults)


def _staging_settings(**overrides) -> StorePlatformSettings:
    defaults = {
        "environment": "staging",
        "cluster_api_url": "https://k8s.example:6443",
        "cluster_token": "test-token-not-real",
        "base_domain": "stores.example.com",
    }
    defaults.update(overrides)
    return StorePlatformSettings(**defaults)


# ── Construction ────────────────────────────────────────────────────


def test_create_app_defaults_to_local_settings():
    app = create_app()

    assert app.state.settings.environment == "local"
    assert isinstance(app.state.deps, AppDependencies)


def test_local_mode_uses_inmemory_cluster():
    app = create_app(_local_settings())

    assert isinstance(app.state.deps.cluster_client, InMemoryClusterClient)


def test_staging_mode_builds_kubernetes_client():
    app = create_app(_staging_settings())

    assert isinstance(app.state.deps.cluster_client, KubernetesClusterClient)


def test_injected_cluster_client_wins():
    cluster = InMemoryClusterClient()
    app = create_app(_staging_settings(), cluster_client=cluster)

    assert app.state.deps.cluster_client is cluster


def test_invalid_settings_raise():
    with pytest.raises(ValueError, match="cluster_api_url is required"):
        create_app(StorePlatformSettings(environment="production"))


def test_orchestrator_uses_configured_base_domain():
    app = create_app(_staging_settings(), cluster_client=InMemoryClusterClient())

    with TestClient(app) as client:
        data = client.post(
            "/api/stores", json={"name": "Acme", "engine": "woocommerce"},
        ).json()["data"]

    assert data["urls"]["storefront"] == f"http://{data['id']}.stores.example.com"


# ── Service endpoints ───────────────────────────────────────────────


def test_api_index():
    with TestClient(create_app(_local_settings())) as client:
        resp = client.get("/api")

    assert resp.status_code == 200
    body = resp.json()
    assert body["service"] == SERVICE_NAME == "store-platform-api"
    assert body["status"] == "ok"
    assert body["endpoints"]["stores"] == "/api/stores"


def test_liveness_probe():
    with TestClient(create_app(_local_settings())) as client:
        resp = client.get("/api/health/live")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert "timestamp" in resp.json()


def test_readiness_probe_reports_cluster_ok():
    app = create_app(_local_settings(), cluster_client=InMemoryClusterClient())

    with TestClient(app) as client:
        resp = client.get("/api/health/ready")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ready"
    assert resp.json()["checks"] == {"kubernetes": "ok"}


def test_readiness_probe_unreachable_cluster_returns_503():
    app = create_app(
        _local_settings(), cluster_client=InMemoryClusterClient(reachable=False),
    )

    with TestClient(app) as client:
        resp = client.get("/api/health/ready")

    assert resp.status_code == 503
    assert resp.json()["status"] == "not ready"
    assert "cluster unreachable" in resp.json()["error"]


def test_metrics_endpoint_exposes_prometheus_text():
    with TestClient(create_app(_local_settings())) as client:
        client.get("/api/stores")
        resp = client.get("/metrics")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "http_server_requests_total" in resp.text


# ── Request ID ──────────────────────────────────────────────────────


def test_request_id_is_generated():
    with TestClient(create_app(_local_settings())) as client:
        resp = client.get("/api/health/live")

    assert len(resp.headers["X-Request-ID"]) >= 8


def test_well_formed_request_id_is_propagated():
    with TestClient(create_app(_local_settings())) as client:
        resp = client.get(
            "/api/health/live", headers={"X-Request-ID": "req-abc-12345678"},
        )

    assert resp.headers["X-Request-ID"] == "req-abc-12345678"


def test_malformed_request_id_is_replaced():
    with TestClient(create_app(_local_settings())) as client:
        resp = client.get("/api/health/live", headers={"X-Request-ID": "bad id!"})

    assert resp.headers["X-Request-ID"] != "bad id!"


# ── Error envelope ──────────────────────────────────────────────────


def test_unhandled_error_renders_internal_error():
    app = create_app(_local_settings())

    @app.get("/api/boom")
    async def boom():
        raise RuntimeError("kaboom")

    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get("/api/boom")

    assert resp.status_code == 500
    assert resp.json() == {
        "success": False,
        "error": {"message": "kaboom", "code": "INTERNAL_ERROR"},
    }


# ── Lifespan ────────────────────────────────────────────────────────


def test_shutdown_cancels_in_flight_provisioning():
    cluster = InMemoryClusterClient(job_outcome="pending")
    app = create_app(
        _local_settings(
            poll_interval_seconds=0.01, bootstrap_timeout_seconds=60,
        ),
        cluster_client=cluster,
    )

    with TestClient(app) as client:
        client.post("/api/stores", json={"name": "Acme", "engine": "woocommerce"})

    assert app.state.deps.orchestrator.active_tasks == 0
