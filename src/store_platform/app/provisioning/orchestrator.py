"""Store lifecycle orchestrator.

Owns the store registry and event log and drives each store through its
lifecycle. ``create_store`` returns the ``pending`` store immediately and
runs the provisioning sequence as a background task:

  1. pending -> provisioning
  2. create the namespace
  3. apply quota and limit range
  4. engine strategy ``deploy`` (data tier, app tier, ingress for WooCommerce)
  5. wait for the application tier to be ready
  6. engine strategy ``finalize`` (bootstrap job for WooCommerce)
  7. provisioning -> ready

Any exception from steps 2-6 moves the store to ``failed`` with the message
recorded and an ``error`` event. Nothing escapes the background task.

Status is written only by the sequence and by ``delete_store``. Deletion
bumps the store's ``generation``, cancels the store's sequence and waits for
it to unwind before deleting the namespace, so nothing the sequence created
outlives the delete. A sequence whose generation is stale stops at its next
write and records nothing further.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Mapping

from ...observability.logging import store_context
from ...observability.metrics import (
    STORE_DELETIONS_TOTAL,
    STORE_PROVISIONING_DURATION_SECONDS,
    STORE_PROVISIONING_TOTAL,
)
from .engines import (
    EngineStrategy,
    ProvisioningContext,
    ProvisioningTimeouts,
    build_engine_strategies,
)
from .errors import StoreNotFoundError
from .models import (
    EventType,
    Store,
    StoreEngine,
    StoreEvent,
    StoreStatus,
    create_pending_store,
    new_store_id,
)
from .state_machine import transition

if TYPE_CHECKING:
    from ..protocols import StoreEventLog, StoreRepository
    from ..providers.cluster_provisioner import ClusterProvisioner

logger = logging.getLogger(__name__)

_EVENT_LOG_LEVELS = {
    EventType.INFO: logging.INFO,
    EventType.WARNING: logging.WARNING,
    EventType.ERROR: logging.ERROR,
}


class ProvisioningSuperseded(Exception):
    """The store was deleted (or is being deleted) under a running sequence."""

    def __init__(self, store_id: str) -> None:
        self.store_id = store_id
        super().__init__(f'provisioning of store {store_id!r} was superseded')


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(store: Store) -> Store:
    return replace(store)


class StoreOrchestrator:
    """Create, list, read and delete stores; run provisioning in background."""

    def __init__(
        self,
        *,
        store_repo: StoreRepository,
        event_log: StoreEventLog,
        provisioner: ClusterProvisioner,
        base_domain: str,
        timeouts: ProvisioningTimeouts | None = None,
        strategies: Mapping[StoreEngine, EngineStrategy] | None = None,
        id_factory: Callable[[], str] = new_store_id,
    ) -> None:
        self._stores = store_repo
        self._events = event_log
        self._provisioner = provisioner
        self._base_domain = base_domain
        self._timeouts = timeouts or ProvisioningTimeouts()
        self._strategies = strategies or build_engine_strategies(
            provisioner, self._timeouts,
        )
        self._id_factory = id_factory
        self._tasks: dict[str, asyncio.Task] = {}

    # ── Public operations ────────────────────────────────────────

    async def create_store(self, name: str, engine: StoreEngine) -> Store:
        """Register a ``pending`` store and start provisioning it.

        Returns without waiting for the sequence.
        """
        store_id = await self._allocate_id()
        store = create_pending_store(
            store_id=store_id,
            name=name,
            engine=engine,
            base_domain=self._base_domain,
        )
        await self._stores.put(store)
        await self._emit(store_id, EventType.INFO, f'Store creation initiated: {name}')

        task = asyncio.create_task(
            self._run_provisioning(store_id, store.generation),
            name=f'provision-store-{store_id}',
        )
        self._track(store_id, task)
        return _snapshot(store)

    async def list_stores(self) -> list[Store]:
        """All stores, newest first."""
        stores = await self._stores.list_all()
        for store in stores:
            if store.status is StoreStatus.PROVISIONING:
                await self._refresh_status(store.id)
        stores = await self._stores.list_all()
        return sorted(
            (_snapshot(s) for s in stores),
            key=lambda s: s.created_at,
            reverse=True,
        )

    async def get_store(self, store_id: str) -> Store | None:
        store = await self._stores.get(store_id)
        if store is not None and store.status is StoreStatus.PROVISIONING:
            await self._refresh_status(store_id)
            store = await self._stores.get(store_id)
        return _snapshot(store) if store is not None else None

    async def delete_store(self, store_id: str) -> None:
        """Tear down the store's namespace and drop it from the registry.

        Raises:
            StoreNotFoundError: No such store.
            Exception: Namespace deletion failed; the store stays registered
                as ``failed`` with the error recorded.
        """
        store = await self._stores.get(store_id)
        if store is None:
            raise StoreNotFoundError(store_id)

        deleting = replace(
            transition(store, StoreStatus.DELETING, now=_now()),
            generation=store.generation + 1,
        )
        await self._stores.put(deleting)
        await self._emit(store_id, EventType.INFO, 'Store deletion initiated')
        await self._stop_provisioning(store_id)

        try:
            with store_context(store_id):
                await self._provisioner.delete_isolation_boundary(store.namespace)
        except Exception as exc:
            logger.error(
                'Failed to delete store %s: %s',
                store_id,
                exc,
                extra={'store_id': store_id, 'namespace': store.namespace},
            )
            STORE_DELETIONS_TOTAL.labels(outcome='failed').inc()
            if await self._is_current(store_id, deleting.generation):
                await self._set_status(store_id, StoreStatus.FAILED, error=str(exc))
                await self._emit(
                    store_id, EventType.ERROR, f'Store deletion failed: {exc}',
                )
            raise

        await self._stores.delete(store_id)
        await self._events.delete_for_store(store_id)
        STORE_DELETIONS_TOTAL.labels(outcome='deleted').inc()
        logger.info(
            'Store %s deleted successfully',
            store_id,
            extra={'store_id': store_id, 'namespace': store.namespace},
        )

    async def get_store_events(self, store_id: str) -> list[StoreEvent]:
        """Events in creation order; empty for unknown ids."""
        return await self._events.list_for_store(store_id)

    # ── Background task management ───────────────────────────────

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every in-flight provisioning sequence has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight provisioning sequences (application shutdown)."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _track(self, store_id: str, task: asyncio.Task) -> None:
        self._tasks[store_id] = task

        def forget(done: asyncio.Task) -> None:
            if self._tasks.get(store_id) is done:
                del self._tasks[store_id]

        task.add_done_callback(forget)

    async def _stop_provisioning(self, store_id: str) -> None:
        """Cancel the store's sequence and wait until it has unwound.

        Any cluster call the sequence had in flight completes or is aborted
        before the caller tears the namespace down.
        """
        task = self._tasks.get(store_id)
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # ── Provisioning sequence ────────────────────────────────────

    async def _run_provisioning(self, store_id: str, generation: int) -> None:
        """Top level of the background task; never raises (except cancel)."""
        started = time.monotonic()
        store = await self._stores.get(store_id)
        engine = store.engine.value if store is not None else 'unknown'
        outcome = 'ready'
        try:
            with store_context(store_id):
                await self._provision(store_id, generation)
        except ProvisioningSuperseded:
            outcome = 'superseded'
            logger.info(
                'Provisioning of store %s stopped: store is being deleted',
                store_id,
                extra={'store_id': store_id},
            )
        except asyncio.CancelledError:
            outcome = 'cancelled'
            raise
        except Exception as exc:
            outcome = 'failed'
            logger.error(
                'Provisioning failed for store %s: %s',
                store_id,
                exc,
                exc_info=True,
                extra={'store_id': store_id},
            )
            try:
                await self._record_failure(store_id, generation, str(exc))
            except Exception:
                logger.exception(
                    'Could not record provisioning failure for store %s',
                    store_id,
                    extra={'store_id': store_id},
                )
        finally:
            STORE_PROVISIONING_TOTAL.labels(engine=engine, outcome=outcome).inc()
            STORE_PROVISIONING_DURATION_SECONDS.labels(
                engine=engine, outcome=outcome,
            ).observe(time.monotonic() - started)

    async def _provision(self, store_id: str, generation: int) -> None:
        store = await self._set_status(
            store_id, StoreStatus.PROVISIONING, generation=generation,
        )

        async def emit(event_type: EventType, message: str) -> None:
            await self._emit(store_id, event_type, message, generation=generation)

        await emit(EventType.INFO, 'Starting Kubernetes resource provisioning')

        await emit(EventType.INFO, f'Creating namespace: {store.namespace}')
        await self._provisioner.create_isolation_boundary(
            store.namespace, store_id=store.id,
        )

        await emit(EventType.INFO, 'Applying resource quota')
        await self._provisioner.apply_quota(store.namespace)

        strategy = self._strategies[store.engine]
        ctx = ProvisioningContext(
            store_id=store.id,
            name=store.name,
            namespace=store.namespace,
            emit=emit,
        )
        await strategy.deploy(ctx)

        await emit(EventType.INFO, 'Waiting for pods to be ready')
        await self._provisioner.wait_for_application_tier_ready(
            store.namespace,
            strategy.application_tier_name,
            self._timeouts.application_ready,
        )

        await strategy.finalize(ctx)

        await self._set_status(store_id, StoreStatus.READY, generation=generation)
        await emit(EventType.INFO, 'Store is ready!')

    async def _record_failure(
        self, store_id: str, generation: int, message: str,
    ) -> None:
        if not await self._is_current(store_id, generation):
            logger.info(
                'Dropping provisioning failure for superseded store %s: %s',
                store_id,
                message,
                extra={'store_id': store_id},
            )
            return
        await self._set_status(store_id, StoreStatus.FAILED, error=message)
        await self._emit(
            store_id, EventType.ERROR, f'Provisioning failed: {message}',
        )

    async def _refresh_status(self, store_id: str) -> None:
        # Status transitions belong to the provisioning sequence alone;
        # a read never infers ready/failed from the cluster.
        return None

    # ── Registry writes ──────────────────────────────────────────

    async def _allocate_id(self) -> str:
        store_id = self._id_factory()
        while await self._stores.id_in_use(store_id):
            store_id = self._id_factory()
        return store_id

    async def _is_current(self, store_id: str, generation: int) -> bool:
        store = await self._stores.get(store_id)
        return store is not None and store.generation == generation

    async def _set_status(
        self,
        store_id: str,
        status: StoreStatus,
        *,
        generation: int | None = None,
        error: str | None = None,
    ) -> Store:
        store = await self._stores.get(store_id)
        if store is None:
            raise ProvisioningSuperseded(store_id)
        if generation is not None and store.generation != generation:
            raise ProvisioningSuperseded(store_id)
        updated = transition(store, status, now=_now(), error=error)
        await self._stores.put(updated)
        return updated

    async def _emit(
        self,
        store_id: str,
        event_type: EventType,
        message: str,
        *,
        generation: int | None = None,
    ) -> None:
        if generation is not None and not await self._is_current(store_id, generation):
            raise ProvisioningSuperseded(store_id)
        await self._events.append(
            StoreEvent(store_id=store_id, type=event_type, message=message),
        )
        logger.log(
            _EVENT_LOG_LEVELS[event_type],
            '[store %s] %s: %s',
            store_id,
            event_type.value,
            message,
            extra={'store_id': store_id, 'event_type': event_type.value},
        )
