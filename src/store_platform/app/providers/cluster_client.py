"""Async HTTP client for the Kubernetes REST API.

Provides generic create, read, and delete operations keyed by
(resource kind, namespace, name). Auth uses a static bearer token (a
service-account token in-cluster). Includes exponential backoff with jitter
for transient errors and Retry-After header respect for 429 responses.

Remote signals are surfaced as typed errors so callers can treat them as
benign where appropriate:
  409 -> ClusterConflictError  (duplicate create)
  404 -> ClusterNotFoundError  (absent resource or namespace)
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Status codes eligible for automatic retry.
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Default retry configuration.
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 1.0  # seconds
_DEFAULT_MAX_DELAY = 30.0  # seconds


# ── Exception hierarchy ─────────────────────────────────────────


class ClusterAPIError(Exception):
    """Base exception for cluster API errors."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        *,
        response_body: str = "",
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Cluster API error {status_code}: {message}")


class ClusterNotFoundError(ClusterAPIError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Resource not found", **kwargs: Any) -> None:
        super().__init__(404, message, **kwargs)


class ClusterConflictError(ClusterAPIError):
    """Resource already exists (409)."""

    def __init__(self, message: str = "Resource already exists", **kwargs: Any) -> None:
        super().__init__(409, message, **kwargs)


class ClusterTimeoutError(ClusterAPIError):
    """Request to the cluster API timed out."""

    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(0, message)


class ClusterConnectionError(ClusterAPIError):
    """The cluster API could not be reached (refused, reset, DNS, TLS)."""

    def __init__(self, message: str = "Connection failed") -> None:
        super().__init__(0, message)


# ── Resource kinds ───────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ResourceKind:
    """REST addressing for one Kubernetes resource type."""

    plural: str
    api_prefix: str = "/api/v1"
    namespaced: bool = True

    def collection_path(self, namespace: str | None) -> str:
        if not self.namespaced:
            return f"{self.api_prefix}/{self.plural}"
        if not namespace:
            raise ValueError(f"{self.plural} requires a namespace")
        return f"{self.api_prefix}/namespaces/{namespace}/{self.plural}"

    def item_path(self, name: str, namespace: str | None) -> str:
        return f"{self.collection_path(namespace)}/{name}"


NAMESPACES = ResourceKind("namespaces", namespaced=False)
RESOURCE_QUOTAS = ResourceKind("resourcequotas")
LIMIT_RANGES = ResourceKind("limitranges")
SECRETS = ResourceKind("secrets")
PERSISTENT_VOLUME_CLAIMS = ResourceKind("persistentvolumeclaims")
SERVICES = ResourceKind("services")
STATEFUL_SETS = ResourceKind("statefulsets", api_prefix="/apis/apps/v1")
DEPLOYMENTS = ResourceKind("deployments", api_prefix="/apis/apps/v1")
INGRESSES = ResourceKind("ingresses", api_prefix="/apis/networking.k8s.io/v1")
JOBS = ResourceKind("jobs", api_prefix="/apis/batch/v1")

# Kinds whose deletes must cascade to dependents (pods, namespaced objects).
_BACKGROUND_PROPAGATION = frozenset({"namespaces", "jobs"})


# ── Client ───────────────────────────────────────────────────────


class KubernetesClusterClient:
    """Async HTTP client for the Kubernetes API server.

    All calls authenticate via a static bearer token injected server-side.
    """

    def __init__(
        self,
        *,
        base_url: str,
        bearer_token: str,
        http_client: httpx.AsyncClient | None = None,
        verify: bool | str = True,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        if not bearer_token:
            raise ValueError("bearer_token is required")

        self._base_url = base_url.rstrip("/")
        self._bearer_token = bearer_token
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(verify=verify)
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._bearer_token}",
            "Accept": "application/json",
        }

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        body = resp.text
        message = body[:200] if body else f"HTTP {resp.status_code}"

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                # Kubernetes errors are Status objects: {"kind": "Status", "message": ...}
                message = payload.get("message", message)
        except ValueError:
            pass

        if resp.status_code == 404:
            raise ClusterNotFoundError(message=message, response_body=body)
        if resp.status_code == 409:
            raise ClusterConflictError(message=message, response_body=body)

        raise ClusterAPIError(
            status_code=resp.status_code,
            message=message,
            response_body=body,
        )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential backoff retry for transient errors."""
        url = f"{self._base_url}{path}"
        headers = self._auth_headers()

        last_exc: ClusterAPIError | None = None
        for attempt in range(self._max_retries + 1):
            try:
                resp = await self._client.request(
                    method,
                    url,
                    headers=headers,
                    json=json,
                    params=params,
                    timeout=self._timeout,
                )
            except httpx.TransportError as e:
                if isinstance(e, httpx.TimeoutException):
                    last_exc = ClusterTimeoutError(str(e) or "Request timed out")
                else:
                    last_exc = ClusterConnectionError(str(e) or type(e).__name__)
                if attempt < self._max_retries:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        "Cluster %s %s failed: %s (attempt %d/%d), retrying in %.1fs",
                        method,
                        path,
                        last_exc.message,
                        attempt + 1,
                        self._max_retries + 1,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise last_exc from e

            if resp.status_code not in _RETRYABLE_STATUS_CODES:
                return resp

            if attempt < self._max_retries:
                delay = self._retry_after_delay(resp, attempt)
                logger.warning(
                    "Cluster %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                    method,
                    path,
                    resp.status_code,
                    attempt + 1,
                    self._max_retries + 1,
                    delay,
                )
                await asyncio.sleep(delay)
            else:
                return resp

        if last_exc:
            raise last_exc
        raise ClusterAPIError(0, "exhausted retries with no response")

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        delay = min(self._base_delay * (2 ** attempt), self._max_delay)
        return random.uniform(0, delay)

    def _retry_after_delay(self, resp: httpx.Response, attempt: int) -> float:
        """Use Retry-After header if present, otherwise exponential backoff."""
        retry_after = resp.headers.get("retry-after")
        if retry_after:
            try:
                return max(float(retry_after), 0.1)
            except ValueError:
                pass
        return self._backoff_delay(attempt)

    # ── Public API ───────────────────────────────────────────────

    async def create(
        self,
        kind: ResourceKind,
        body: dict[str, Any],
        *,
        namespace: str | None = None,
    ) -> dict[str, Any]:
        """Create a resource.

        Raises ClusterConflictError if it already exists and
        ClusterNotFoundError if the namespace does not.
        """
        resp = await self._request_with_retry(
            "POST", kind.collection_path(namespace), json=body,
        )
        self._raise_for_status(resp)
        return resp.json()

    async def read(
        self,
        kind: ResourceKind,
        name: str,
        *,
        namespace: str | None = None,
    ) -> dict[str, Any]:
        """Read a resource (spec and status).

        Raises ClusterNotFoundError if the resource doesn't exist.
        """
        resp = await self._request_with_retry("GET", kind.item_path(name, namespace))
        self._raise_for_status(resp)
        return resp.json()

    async def delete(
        self,
        kind: ResourceKind,
        name: str,
        *,
        namespace: str | None = None,
    ) -> None:
        """Delete a resource.

        Raises ClusterNotFoundError if the resource doesn't exist.
        """
        params = None
        if kind.plural in _BACKGROUND_PROPAGATION:
            params = {"propagationPolicy": "Background"}
        resp = await self._request_with_retry(
            "DELETE", kind.item_path(name, namespace), params=params,
        )
        self._raise_for_status(resp)

    async def version(self) -> dict[str, Any]:
        """Return the API server version (connectivity check)."""
        resp = await self._request_with_retry("GET", "/version")
        self._raise_for_status(resp)
        return resp.json()
