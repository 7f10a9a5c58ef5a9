"""Engine dispatch table: one provisioning strategy per commerce engine.

The orchestrator's sequence is engine-agnostic. It calls ``deploy`` after
the namespace and quota exist, waits for ``application_tier_name`` to be
ready, then calls ``finalize``. Adding an engine means adding a
``StoreEngine`` member and a strategy here; the state machine and the
sequence stay untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Awaitable, Callable, Mapping, Protocol

from ..providers import templates
from .errors import UnimplementedEngineError
from .models import EventType, StoreEngine

if TYPE_CHECKING:
    from ..providers.cluster_provisioner import ClusterProvisioner


@dataclass(frozen=True, slots=True)
class ProvisioningTimeouts:
    """Deadlines (seconds) for the blocking waits of one sequence."""

    data_tier_ready: float = 120
    application_ready: float = 300
    bootstrap: float = 600


@dataclass(frozen=True, slots=True)
class ProvisioningContext:
    """What a strategy needs to know about the store being provisioned."""

    store_id: str
    name: str
    namespace: str
    emit: Callable[[EventType, str], Awaitable[None]]


class EngineStrategy(Protocol):
    engine: StoreEngine
    application_tier_name: str

    async def deploy(self, ctx: ProvisioningContext) -> None: ...
    async def finalize(self, ctx: ProvisioningContext) -> None: ...


class WooCommerceStrategy:
    """MariaDB + WordPress + ingress, then the WooCommerce bootstrap job."""

    engine = StoreEngine.WOOCOMMERCE
    application_tier_name = templates.APP_NAME

    def __init__(
        self,
        provisioner: ClusterProvisioner,
        timeouts: ProvisioningTimeouts,
    ) -> None:
        self._provisioner = provisioner
        self._timeouts = timeouts

    async def deploy(self, ctx: ProvisioningContext) -> None:
        await ctx.emit(EventType.INFO, 'Deploying MariaDB database')
        await self._provisioner.deploy_data_tier(ctx.namespace, ctx.store_id)
        await self._provisioner.wait_for_data_tier_ready(
            ctx.namespace, templates.DB_NAME, self._timeouts.data_tier_ready,
        )

        await ctx.emit(EventType.INFO, 'Deploying WordPress with WooCommerce')
        await self._provisioner.deploy_application_tier(ctx.namespace, ctx.store_id)

        await ctx.emit(EventType.INFO, 'Creating ingress for store')
        await self._provisioner.create_public_route(ctx.namespace, ctx.store_id)

    async def finalize(self, ctx: ProvisioningContext) -> None:
        await ctx.emit(
            EventType.INFO,
            'Bootstrapping WooCommerce (plugins, sample catalog, checkout)',
        )
        await self._provisioner.run_bootstrap_task(
            ctx.namespace,
            ctx.store_id,
            ctx.name,
            timeout_seconds=self._timeouts.bootstrap,
        )


class MedusaStrategy:
    """Reserved engine: fails the sequence before any workload is deployed."""

    engine = StoreEngine.MEDUSA
    # Required by EngineStrategy; never waited on because deploy raises.
    application_tier_name = 'medusa'

    def _unimplemented(self) -> UnimplementedEngineError:
        return UnimplementedEngineError(
            self.engine.value,
            'MedusaJS engine is not yet implemented. Please use WooCommerce.',
        )

    async def deploy(self, ctx: ProvisioningContext) -> None:
        await ctx.emit(
            EventType.WARNING, 'MedusaJS provisioning is not yet implemented',
        )
        raise self._unimplemented()

    async def finalize(self, ctx: ProvisioningContext) -> None:
        # Unreachable after deploy; present for the strategy protocol.
        raise self._unimplemented()


def build_engine_strategies(
    provisioner: ClusterProvisioner,
    timeouts: ProvisioningTimeouts,
) -> Mapping[StoreEngine, EngineStrategy]:
    """Dispatch table covering every ``StoreEngine`` member."""
    strategies: dict[StoreEngine, EngineStrategy] = {
        StoreEngine.WOOCOMMERCE: WooCommerceStrategy(provisioner, timeouts),
        StoreEngine.MEDUSA: MedusaStrategy(),
    }
    return MappingProxyType(strategies)
