"""Unit tests for KubernetesClusterClient.

Tests the Kubernetes REST client with a mocked httpx transport.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from store_platform.app.providers.cluster_client import (
    DEPLOYMENTS,
    INGRESSES,
    JOBS,
    NAMESPACES,
    SECRETS,
    ClusterAPIError,
    ClusterConflictError,
    ClusterConnectionError,
    ClusterNotFoundError,
    ClusterTimeoutError,
    KubernetesClusterClient,
    ResourceKind,
)


def _make_client(**kwargs) -> KubernetesClusterClient:
    kwargs.setdefault("base_delay", 0.0)
    return KubernetesClusterClient(
        bearer_token="test-cluster-token",
        base_url="https://k8s.example:6443/",
        **kwargs,
    )


def _status(code: int, message: str) -> httpx.Response:
    return httpx.Response(
        code,
        json={"kind": "Status", "status": "Failure", "message": message, "code": code},
    )


# ── Resource addressing ──────────────────────────────────────────


def test_core_kind_paths():
    assert SECRETS.collection_path("store-a") == "/api/v1/namespaces/store-a/secrets"
    assert SECRETS.item_path("db", "store-a") == "/api/v1/namespaces/store-a/secrets/db"


def test_group_kind_paths():
    assert DEPLOYMENTS.item_path("wordpress", "store-a") == (
        "/apis/apps/v1/namespaces/store-a/deployments/wordpress"
    )
    assert INGRESSES.collection_path("store-a") == (
        "/apis/networking.k8s.io/v1/namespaces/store-a/ingresses"
    )
    assert JOBS.collection_path("store-a") == "/apis/batch/v1/namespaces/store-a/jobs"


def test_cluster_scoped_kind_ignores_namespace():
    assert NAMESPACES.collection_path(None) == "/api/v1/namespaces"
    assert NAMESPACES.item_path("store-a", None) == "/api/v1/namespaces/store-a"


def test_namespaced_kind_requires_namespace():
    with pytest.raises(ValueError):
        ResourceKind("secrets").collection_path(None)


# ── Constructor ──────────────────────────────────────────────────


def test_requires_base_url_and_token():
    with pytest.raises(ValueError):
        KubernetesClusterClient(base_url="", bearer_token="t")
    with pytest.raises(ValueError):
        KubernetesClusterClient(base_url="https://k8s", bearer_token="")


# ── CRUD requests ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_posts_to_collection_with_bearer_token():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(
        return_value=httpx.Response(201, json={"metadata": {"name": "db"}})
    )
    client = _make_client(http_client=mock_http)

    body = {"metadata": {"name": "db"}}
    result = await client.create(SECRETS, body, namespace="store-a")

    assert result["metadata"]["name"] == "db"
    call = mock_http.request.call_args
    assert call.args[0] == "POST"
    assert call.args[1] == "https://k8s.example:6443/api/v1/namespaces/store-a/secrets"
    assert call.kwargs["headers"]["Authorization"] == "Bearer test-cluster-token"
    assert call.kwargs["json"] == body


@pytest.mark.asyncio
async def test_read_gets_item_path():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(
        return_value=httpx.Response(200, json={"status": {"readyReplicas": 1}})
    )
    client = _make_client(http_client=mock_http)

    result = await client.read(DEPLOYMENTS, "wordpress", namespace="store-a")

    assert result["status"]["readyReplicas"] == 1
    call = mock_http.request.call_args
    assert call.args[0] == "GET"
    assert call.args[1].endswith("/apis/apps/v1/namespaces/store-a/deployments/wordpress")


@pytest.mark.asyncio
async def test_namespace_delete_uses_background_propagation():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(return_value=httpx.Response(200, json={}))
    client = _make_client(http_client=mock_http)

    await client.delete(NAMESPACES, "store-a")

    call = mock_http.request.call_args
    assert call.args[0] == "DELETE"
    assert call.args[1].endswith("/api/v1/namespaces/store-a")
    assert call.kwargs["params"] == {"propagationPolicy": "Background"}


@pytest.mark.asyncio
async def test_secret_delete_has_no_propagation_policy():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(return_value=httpx.Response(200, json={}))
    client = _make_client(http_client=mock_http)

    await client.delete(SECRETS, "db", namespace="store-a")

    assert mock_http.request.call_args.kwargs["params"] is None


@pytest.mark.asyncio
async def test_version_hits_version_endpoint():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(
        return_value=httpx.Response(200, json={"gitVersion": "v1.29.0"})
    )
    client = _make_client(http_client=mock_http)

    result = await client.version()

    assert result["gitVersion"] == "v1.29.0"
    assert mock_http.request.call_args.args[1].endswith("/version")


# ── Error mapping ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_404_raises_not_found_with_status_message():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(
        return_value=_status(404, 'namespaces "store-a" not found')
    )
    client = _make_client(http_client=mock_http)

    with pytest.raises(ClusterNotFoundError) as exc_info:
        await client.read(NAMESPACES, "store-a")

    assert exc_info.value.status_code == 404
    assert exc_info.value.message == 'namespaces "store-a" not found'


@pytest.mark.asyncio
async def test_409_raises_conflict():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(
        return_value=_status(409, 'secrets "db" already exists')
    )
    client = _make_client(http_client=mock_http)

    with pytest.raises(ClusterConflictError) as exc_info:
        await client.create(SECRETS, {"metadata": {"name": "db"}}, namespace="store-a")

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_403_raises_generic_api_error():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(return_value=_status(403, "forbidden"))
    client = _make_client(http_client=mock_http)

    with pytest.raises(ClusterAPIError) as exc_info:
        await client.read(SECRETS, "db", namespace="store-a")

    assert exc_info.value.status_code == 403
    assert not isinstance(exc_info.value, (ClusterNotFoundError, ClusterConflictError))
    assert mock_http.request.call_count == 1


@pytest.mark.asyncio
async def test_non_json_error_body_is_used_as_message():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(return_value=httpx.Response(400, text="bad request"))
    client = _make_client(http_client=mock_http)

    with pytest.raises(ClusterAPIError) as exc_info:
        await client.read(SECRETS, "db", namespace="store-a")

    assert exc_info.value.message == "bad request"


# ── Retry ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retries_transient_503_then_succeeds():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(
        side_effect=[
            httpx.Response(503, text="unavailable"),
            httpx.Response(200, json={"ok": True}),
        ]
    )
    client = _make_client(http_client=mock_http)

    result = await client.version()

    assert result == {"ok": True}
    assert mock_http.request.call_count == 2


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(return_value=httpx.Response(500, text="boom"))
    client = _make_client(http_client=mock_http, max_retries=2)

    with pytest.raises(ClusterAPIError) as exc_info:
        await client.version()

    assert exc_info.value.status_code == 500
    assert mock_http.request.call_count == 3


@pytest.mark.asyncio
async def test_honours_retry_after_header():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(
        side_effect=[
            httpx.Response(429, text="slow down", headers={"Retry-After": "2"}),
            httpx.Response(200, json={}),
        ]
    )
    client = _make_client(http_client=mock_http)

    with patch(
        "store_platform.app.providers.cluster_client.asyncio.sleep",
        new=AsyncMock(),
    ) as mock_sleep:
        await client.version()

    mock_sleep.assert_awaited_once_with(2.0)


@pytest.mark.asyncio
async def test_timeout_is_retried_then_raised():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(side_effect=httpx.ReadTimeout("timed out"))
    client = _make_client(http_client=mock_http, max_retries=1)

    with pytest.raises(ClusterTimeoutError):
        await client.version()

    assert mock_http.request.call_count == 2


@pytest.mark.asyncio
async def test_connect_error_is_retried_then_succeeds():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(
        side_effect=[
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json={"gitVersion": "v1.29.0"}),
        ]
    )
    client = _make_client(http_client=mock_http)

    result = await client.version()

    assert result == {"gitVersion": "v1.29.0"}
    assert mock_http.request.call_count == 2


@pytest.mark.asyncio
async def test_persistent_transport_error_raises_connection_error():
    mock_http = AsyncMock()
    mock_http.request = AsyncMock(side_effect=httpx.RemoteProtocolError("connection reset"))
    client = _make_client(http_client=mock_http, max_retries=2)

    with pytest.raises(ClusterConnectionError) as exc_info:
        await client.delete(NAMESPACES, "store-abc12345")

    assert isinstance(exc_info.value, ClusterAPIError)
    assert exc_info.value.status_code == 0
    assert exc_info.value.message == "connection reset"
    assert isinstance(exc_info.value.__cause__, httpx.RemoteProtocolError)
    assert mock_http.request.call_count == 3


# ── Lifecycle) ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open():
    mock_http = AsyncMock()
    client = _make_client(http_client=mock_http)

    await client.aclose()

    mock_http.aclose.assert_not_awaited()
