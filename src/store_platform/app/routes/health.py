"""Liveness and readiness probes.

  GET /api/health/live   → process is up
  GET /api/health/ready  → the cluster API answers ``/version``
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from store_platform.app.protocols import ClusterClient

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_health_router(cluster_client: ClusterClient) -> APIRouter:
    router = APIRouter(prefix='/api/health', tags=['health'])

    @router.get('/live')
    async def live():
        return {'status': 'ok', 'timestamp': _timestamp()}

    @router.get('/ready')
    async def ready():
        try:
            await cluster_client.version()
        except Exception as exc:
            logger.warning('Readiness check failed: %s', exc)
            return JSONResponse(
                status_code=503,
                content={'status': 'not ready', 'error': str(exc)},
            )
        return {
            'status': 'ready',
            'timestamp': _timestamp(),
            'checks': {'kubernetes': 'ok'},
        }

    return router
