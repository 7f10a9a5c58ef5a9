"""Repository and provider protocol interfaces for dependency injection.

These protocols define the contracts that concrete implementations (InMemory
for local dev and tests, Kubernetes for real clusters) must satisfy. The app
factory accepts any implementation that matches these protocols.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .providers.cluster_client import ResourceKind
from .provisioning.models import Store, StoreEvent


@runtime_checkable
class StoreRepository(Protocol):
    """Store registry keyed by store id.

    Each method completes without suspending mid-mutation, so a single call
    is atomic with respect to other tasks on the event loop.
    """

    async def get(self, store_id: str) -> Store | None: ...
    async def list_all(self) -> list[Store]: ...
    async def put(self, store: Store) -> Store: ...
    async def delete(self, store_id: str) -> bool: ...
    async def id_in_use(self, store_id: str) -> bool: ...


@runtime_checkable
class StoreEventLog(Protocol):
    """Append-only per-store audit trail."""

    async def append(self, event: StoreEvent) -> StoreEvent: ...
    async def list_for_store(self, store_id: str) -> list[StoreEvent]: ...
    async def delete_for_store(self, store_id: str) -> None: ...


@runtime_checkable
class ClusterClient(Protocol):
    """Generic declarative resource API (Kubernetes REST or a fake)."""

    async def create(
        self, kind: ResourceKind, body: dict[str, Any], *, namespace: str | None = None,
    ) -> dict[str, Any]: ...
    async def read(
        self, kind: ResourceKind, name: str, *, namespace: str | None = None,
    ) -> dict[str, Any]: ...
    async def delete(
        self, kind: ResourceKind, name: str, *, namespace: str | None = None,
    ) -> None: ...
    async def version(self) -> dict[str, Any]: ...
    async def aclose(self) -> None: ...
