"""Store platform FastAPI application factory.

The create_app() factory is the single entry point for building the
control-plane ASGI application. It wires middleware (request-ID, access
metrics and logging, CORS), error envelopes, and the store/health routes, and
injects repository/cluster implementations via dependency injection.

Usage:
    # Local development (in-memory cluster)
    from store_platform.app import create_app, StorePlatformSettings
    app = create_app(StorePlatformSettings())

    # Real cluster
    settings = StorePlatformSettings.from_env()
    app = create_app(settings)

    # Testing (full DI control)
    app = create_app(settings, cluster_client=fake_cluster, ...)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from ..observability.metrics import metrics_text
from ..observability.middleware import (
    AccessMiddleware,
    RequestIdMiddleware,
)
from .protocols import ClusterClient, StoreEventLog, StoreRepository
from .providers.cluster_client import ClusterAPIError, KubernetesClusterClient
from .providers.cluster_provisioner import ClusterProvisioner
from .provisioning.engines import ProvisioningTimeouts
from .provisioning.errors import StorePlatformError
from .provisioning.orchestrator import StoreOrchestrator
from .routes import create_health_router, create_stores_router
from .settings import StorePlatformSettings

logger = logging.getLogger(__name__)

SERVICE_NAME = "store-platform-api"


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected repository/provider instances.

    Stored on ``app.state.deps`` so route handlers and tests can access them.
    """

    store_repo: StoreRepository
    event_log: StoreEventLog
    cluster_client: ClusterClient
    provisioner: ClusterProvisioner
    orchestrator: StoreOrchestrator


def _build_cluster_client(settings: StorePlatformSettings) -> ClusterClient:
    """InMemory cluster for local mode, Kubernetes REST otherwise."""
    if settings.is_local and not settings.cluster_api_url:
        from .inmemory import InMemoryClusterClient

        return InMemoryClusterClient()
    return KubernetesClusterClient(
        base_url=settings.cluster_api_url,
        bearer_token=settings.cluster_token,
        verify=settings.tls_verify,
    )


def _build_dependencies(
    settings: StorePlatformSettings,
    *,
    store_repo: StoreRepository | None,
    event_log: StoreEventLog | None,
    cluster_client: ClusterClient | None,
) -> AppDependencies:
    from .inmemory import InMemoryStoreEventLog, InMemoryStoreRepository

    store_repo = store_repo or InMemoryStoreRepository()
    event_log = event_log or InMemoryStoreEventLog()
    cluster_client = cluster_client or _build_cluster_client(settings)

    provisioner = ClusterProvisioner(
        cluster_client,
        base_domain=settings.base_domain,
        poll_interval_seconds=settings.poll_interval_seconds,
    )
    orchestrator = StoreOrchestrator(
        store_repo=store_repo,
        event_log=event_log,
        provisioner=provisioner,
        base_domain=settings.base_domain,
        timeouts=ProvisioningTimeouts(
            data_tier_ready=settings.data_tier_ready_timeout_seconds,
            application_ready=settings.application_ready_timeout_seconds,
            bootstrap=settings.bootstrap_timeout_seconds,
        ),
    )
    return AppDependencies(
        store_repo=store_repo,
        event_log=event_log,
        cluster_client=cluster_client,
        provisioner=provisioner,
        orchestrator=orchestrator,
    )


# ── Error envelope ──────────────────────────────────────────────────


def _error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"message": message, "code": code}},
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StorePlatformError)
    async def store_platform_error(request: Request, exc: StorePlatformError):
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s",
                request.method,
                request.url.path,
                exc.message,
                extra={"store_id": exc.store_id, "code": exc.code},
            )
        return _error_response(exc.status_code, exc.message, exc.code)

    @app.exception_handler(ClusterAPIError)
    async def cluster_error(request: Request, exc: ClusterAPIError):
        logger.error(
            "%s %s failed on cluster API: %s",
            request.method,
            request.url.path,
            exc,
            extra={"cluster_status": exc.status_code},
        )
        return _error_response(502, exc.message or str(exc), "CLUSTER_ERROR")

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error_response(400, message, "VALIDATION_ERROR")

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(500, str(exc) or "Internal server error", "INTERNAL_ERROR")


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: StorePlatformSettings | None = None,
    *,
    store_repo: StoreRepository | None = None,
    event_log: StoreEventLog | None = None,
    cluster_client: ClusterClient | None = None,
) -> FastAPI:
    """Create a configured store platform FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        store_repo, event_log: Registry overrides. InMemory when None.
        cluster_client: Cluster API override. When None, local mode uses
            the in-memory cluster and other environments build a
            ``KubernetesClusterClient`` from settings.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = StorePlatformSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Store platform settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    deps = _build_dependencies(
        settings,
        store_repo=store_repo,
        event_log=event_log,
        cluster_client=cluster_client,
    )

    # Lifespan
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Store platform startup (environment=%s, base_domain=%s)",
            settings.environment,
            settings.base_domain,
        )
        yield
        await deps.orchestrator.aclose()
        await deps.cluster_client.aclose()
        logger.info("Store platform shutdown")

    app = FastAPI(
        title="Store Platform API",
        description="Control plane API for provisioning isolated e-commerce stores",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestID -> Access -> CORS -> route

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AccessMiddleware)
    app.add_middleware(RequestIdMiddleware)

    _register_exception_handlers(app)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/api")
    async def index():
        return {
            "service": SERVICE_NAME,
            "status": "ok",
            "endpoints": {
                "health": "/api/health",
                "stores": "/api/stores",
                "metrics": "/metrics",
            },
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_health_router(deps.cluster_client))
    app.include_router(create_stores_router(deps.orchestrator))

    return app


# For uvicorn, use --factory flag:
#   uvicorn store_platform.app.main:create_app --factory
# This avoids executing create_app() at import time.
