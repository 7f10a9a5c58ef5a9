"""Store CRUD and event log API.

  GET    /api/stores               → all stores, newest first
  GET    /api/stores/{store_id}    → one store
  POST   /api/stores               → create (201, store at ``pending``)
  DELETE /api/stores/{store_id}    → tear down (awaited) and remove
  GET    /api/stores/{store_id}/events → ordered event log

Every response uses the envelope ``{success, data}`` or
``{success: false, error: {message, code}}``. Domain errors raised by the
orchestrator are rendered by the exception handlers registered in
``create_app``.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from store_platform.app.provisioning.errors import (
    StoreNotFoundError,
    StoreValidationError,
)
from store_platform.app.provisioning.models import (
    StoreEngine,
    event_payload,
    store_payload,
)
from store_platform.app.provisioning.orchestrator import StoreOrchestrator


# ── Request schemas ───────────────────────────────────────────────────


class CreateStoreRequest(BaseModel):
    # Both optional so missing fields produce VALIDATION_ERROR, not a 422.
    name: str | None = Field(default=None, description='Display name.')
    engine: str | None = Field(
        default=None, description='One of: woocommerce, medusa.',
    )


def _parse_create_request(body: CreateStoreRequest | None) -> tuple[str, StoreEngine]:
    name = body.name if body else None
    engine = body.engine if body else None
    if not name or not name.strip() or not engine:
        raise StoreValidationError('Name and engine are required')
    try:
        return name.strip(), StoreEngine(engine)
    except ValueError:
        raise StoreValidationError(
            'Invalid engine. Must be woocommerce or medusa',
        ) from None


# ── Response helpers ──────────────────────────────────────────────────


def _ok(data, *, status_code: int = 200):
    if status_code == 200:
        return {'success': True, 'data': data}
    return JSONResponse(
        status_code=status_code, content={'success': True, 'data': data},
    )


# ── Route factory ─────────────────────────────────────────────────────


def create_stores_router(orchestrator: StoreOrchestrator) -> APIRouter:
    """Create the store router bound to an orchestrator.

    Args:
        orchestrator: The app's ``StoreOrchestrator``.

    Returns:
        FastAPI router with the ``/api/stores`` endpoints.
    """
    router = APIRouter(prefix='/api/stores', tags=['stores'])

    @router.get('')
    async def list_stores():
        stores = await orchestrator.list_stores()
        return _ok([store_payload(s) for s in stores])

    @router.get('/{store_id}')
    async def get_store(store_id: str):
        store = await orchestrator.get_store(store_id)
        if store is None:
            raise StoreNotFoundError(store_id)
        return _ok(store_payload(store))

    @router.post('')
    async def create_store(body: CreateStoreRequest | None = None):
        """Register a store and start provisioning it in the background."""
        name, engine = _parse_create_request(body)
        store = await orchestrator.create_store(name, engine)
        return _ok(store_payload(store), status_code=201)

    @router.delete('/{store_id}')
    async def delete_store(store_id: str):
        """Delete the store's namespace, then forget the store."""
        await orchestrator.delete_store(store_id)
        return {'success': True, 'message': 'Store deleted successfully'}

    @router.get('/{store_id}/events')
    async def list_store_events(store_id: str):
        events = await orchestrator.get_store_events(store_id)
        return _ok([event_payload(e) for e in events])

    return router
