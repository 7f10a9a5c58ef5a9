"""In-memory implementations for local development and tests.

These are used when ENVIRONMENT=local. They satisfy the protocol interfaces
but store everything in dicts (no persistence across restarts).

``InMemoryClusterClient`` mimics the Kubernetes API's signals: 409 on a
duplicate create, 404 on reads/deletes of absent objects and on creates in
an absent namespace, and cascading namespace deletion. Workloads and jobs
get a synthetic ``status`` so readiness and completion waits resolve.
"""

from __future__ import annotations

import copy
from typing import Any

from .providers.cluster_client import (
    NAMESPACES,
    ClusterAPIError,
    ClusterConflictError,
    ClusterNotFoundError,
    ResourceKind,
)
from .provisioning.models import Store, StoreEvent


class InMemoryStoreRepository:
    def __init__(self) -> None:
        self._stores: dict[str, Store] = {}
        # Ids are never reused, even after deletion.
        self._retired_ids: set[str] = set()

    async def get(self, store_id: str) -> Store | None:
        return self._stores.get(store_id)

    async def list_all(self) -> list[Store]:
        return list(self._stores.values())

    async def put(self, store: Store) -> Store:
        self._stores[store.id] = store
        return store

    async def delete(self, store_id: str) -> bool:
        if self._stores.pop(store_id, None) is None:
            return False
        self._retired_ids.add(store_id)
        return True

    async def id_in_use(self, store_id: str) -> bool:
        return store_id in self._stores or store_id in self._retired_ids


class InMemoryStoreEventLog:
    def __init__(self) -> None:
        self._events: dict[str, list[StoreEvent]] = {}

    async def append(self, event: StoreEvent) -> StoreEvent:
        self._events.setdefault(event.store_id, []).append(event)
        return event

    async def list_for_store(self, store_id: str) -> list[StoreEvent]:
        return list(self._events.get(store_id, []))

    async def delete_for_store(self, store_id: str) -> None:
        self._events.pop(store_id, None)


class InMemoryClusterClient:
    """Fake cluster API that tracks calls.

    Args:
        workloads_ready: Deployments and StatefulSets report all replicas
            ready as soon as they are created.
        job_outcome: ``"succeeded"``, ``"failed"`` or ``"pending"`` status
            reported for created Jobs.
        failures: Map of ``(verb, plural)`` to an exception raised by the
            matching call, e.g. ``{("create", "limitranges"): ClusterAPIError(500)}``.
    """

    def __init__(
        self,
        *,
        workloads_ready: bool = True,
        job_outcome: str = "succeeded",
        failures: dict[tuple[str, str], Exception] | None = None,
        reachable: bool = True,
    ) -> None:
        self.workloads_ready = workloads_ready
        self.job_outcome = job_outcome
        self.failures: dict[tuple[str, str], Exception] = dict(failures or {})
        self.reachable = reachable
        self.calls: list[tuple[str, str, str | None, str]] = []
        self._objects: dict[tuple[str, str | None, str], dict[str, Any]] = {}

    # ── Inspection helpers (tests) ────────────────────────────────

    def get_object(
        self, kind: ResourceKind, name: str, namespace: str | None = None,
    ) -> dict[str, Any] | None:
        return self._objects.get((kind.plural, namespace, name))

    def objects_in(self, namespace: str) -> list[tuple[str, str]]:
        return sorted(
            (plural, name)
            for (plural, ns, name) in self._objects
            if ns == namespace
        )

    def set_status(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str | None,
        status: dict[str, Any],
    ) -> None:
        self._objects[(kind.plural, namespace, name)]["status"] = status

    def count_calls(self, verb: str, plural: str) -> int:
        return sum(1 for c in self.calls if c[0] == verb and c[1] == plural)

    # ── ClusterClient protocol ────────────────────────────────────

    def _maybe_fail(self, verb: str, plural: str) -> None:
        exc = self.failures.get((verb, plural))
        if exc is not None:
            raise exc

    def _namespace_exists(self, namespace: str | None) -> bool:
        return (NAMESPACES.plural, None, namespace) in self._objects

    def _initial_status(self, kind: ResourceKind, body: dict[str, Any]) -> dict[str, Any]:
        if kind.plural in ("deployments", "statefulsets"):
            replicas = body.get("spec", {}).get("replicas", 1)
            return {"readyReplicas": replicas if self.workloads_ready else 0}
        if kind.plural == "jobs":
            if self.job_outcome == "succeeded":
                return {"succeeded": 1}
            if self.job_outcome == "failed":
                return {"failed": 1}
            return {"active": 1}
        return {}

    async def create(
        self,
        kind: ResourceKind,
        body: dict[str, Any],
        *,
        namespace: str | None = None,
    ) -> dict[str, Any]:
        name = body["metadata"]["name"]
        self.calls.append(("create", kind.plural, namespace, name))
        self._maybe_fail("create", kind.plural)

        ns = namespace if kind.namespaced else None
        if kind.namespaced and not self._namespace_exists(namespace):
            raise ClusterNotFoundError(f'namespaces "{namespace}" not found')
        key = (kind.plural, ns, name)
        if key in self._objects:
            raise ClusterConflictError(f'{kind.plural} "{name}" already exists')

        stored = copy.deepcopy(body)
        stored["status"] = self._initial_status(kind, body)
        self._objects[key] = stored
        return copy.deepcopy(stored)

    async def read(
        self,
        kind: ResourceKind,
        name: str,
        *,
        namespace: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("read", kind.plural, namespace, name))
        self._maybe_fail("read", kind.plural)

        ns = namespace if kind.namespaced else None
        obj = self._objects.get((kind.plural, ns, name))
        if obj is None:
            raise ClusterNotFoundError(f'{kind.plural} "{name}" not found')
        return copy.deepcopy(obj)

    async def delete(
        self,
        kind: ResourceKind,
        name: str,
        *,
        namespace: str | None = None,
    ) -> None:
        self.calls.append(("delete", kind.plural, namespace, name))
        self._maybe_fail("delete", kind.plural)

        ns = namespace if kind.namespaced else None
        if self._objects.pop((kind.plural, ns, name), None) is None:
            raise ClusterNotFoundError(f'{kind.plural} "{name}" not found')
        if kind.plural == NAMESPACES.plural:
            for key in [k for k in self._objects if k[1] == name]:
                del self._objects[key]

    async def version(self) -> dict[str, Any]:
        if not self.reachable:
            raise ClusterAPIError(503, "cluster unreachable")
        return {"major": "1", "minor": "29", "gitVersion": "v1.29.0-inmemory"}

    async def aclose(self) -> None:
        return None
