"""ClusterProvisioner: store primitives on top of a ClusterClient.

Translates provisioning intents (isolation boundary, quota, data tier,
application tier, public route, bootstrap job) into cluster API calls.

Every create is idempotent by convention: a 409 from the API means a
previous (partial) run already created the object, so it counts as
success. Deletes treat 404 the same way. Readiness and completion waits
poll at a fixed interval through ``poll_until`` and raise
``ProvisioningTimeoutError`` when their deadline passes.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import TYPE_CHECKING, Any

from ..provisioning.errors import BootstrapTaskFailedError
from ..provisioning.models import store_hostname
from ..provisioning.polling import DEFAULT_POLL_INTERVAL_SECONDS, poll_until
from . import templates
from .cluster_client import (
    DEPLOYMENTS,
    INGRESSES,
    JOBS,
    LIMIT_RANGES,
    NAMESPACES,
    PERSISTENT_VOLUME_CLAIMS,
    RESOURCE_QUOTAS,
    SECRETS,
    SERVICES,
    STATEFUL_SETS,
    ClusterAPIError,
    ClusterConflictError,
    ClusterNotFoundError,
    ResourceKind,
)
from .templates import WooCommerceTemplates

if TYPE_CHECKING:
    from ..protocols import ClusterClient

logger = logging.getLogger(__name__)

_CREDENTIAL_ALPHABET = string.ascii_letters + string.digits
CREDENTIAL_LENGTH = 24


def generate_credential(length: int = CREDENTIAL_LENGTH) -> str:
    """Random alphanumeric credential."""
    return "".join(secrets.choice(_CREDENTIAL_ALPHABET) for _ in range(length))


def replicas_ready(workload: dict[str, Any]) -> bool:
    """Ready iff observed ready replicas >= desired replicas (default 1)."""
    desired = (workload.get("spec") or {}).get("replicas")
    if desired is None:
        desired = 1
    ready = (workload.get("status") or {}).get("readyReplicas") or 0
    return ready >= desired


class ClusterProvisioner:
    """Creates, inspects, and tears down the cluster objects of a store."""

    def __init__(
        self,
        client: ClusterClient,
        *,
        base_domain: str,
        template_config: WooCommerceTemplates | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._client = client
        self._base_domain = base_domain
        self._templates = template_config or WooCommerceTemplates()
        self._poll_interval = poll_interval_seconds

    @property
    def template_config(self) -> WooCommerceTemplates:
        return self._templates

    async def _create_idempotent(
        self,
        kind: ResourceKind,
        body: dict[str, Any],
        *,
        namespace: str | None = None,
    ) -> bool:
        """Create an object; return False when it already existed."""
        name = body["metadata"]["name"]
        log_extra = {
            "namespace": namespace,
            "resource_kind": kind.plural,
            "resource_name": name,
        }
        try:
            await self._client.create(kind, body, namespace=namespace)
        except ClusterConflictError:
            logger.info(
                "%s %s already exists in %s",
                kind.plural,
                name,
                namespace or "cluster",
                extra=log_extra,
            )
            return False
        logger.info(
            "Created %s %s in %s",
            kind.plural,
            name,
            namespace or "cluster",
            extra=log_extra,
        )
        return True

    # ── Isolation boundary ──────────────────────────────────────

    async def create_isolation_boundary(
        self, name: str, *, store_id: str | None = None,
    ) -> None:
        """Create the store namespace with ownership labels."""
        await self._create_idempotent(
            NAMESPACES, templates.namespace_manifest(name, store_id=store_id),
        )

    async def delete_isolation_boundary(self, name: str) -> None:
        """Delete the namespace and everything in it. Absence is success."""
        try:
            await self._client.delete(NAMESPACES, name)
        except ClusterNotFoundError:
            logger.info(
                "Namespace %s not found, skipping deletion",
                name,
                extra={"namespace": name},
            )
            return
        logger.info("Deleted namespace: %s", name, extra={"namespace": name})

    async def apply_quota(self, namespace: str) -> None:
        """Create the resource quota and the default container limit range.

        The limit range is best effort: a failure after the quota step is
        logged and does not fail the operation.
        """
        await self._create_idempotent(
            RESOURCE_QUOTAS,
            templates.resource_quota_manifest(namespace, self._templates),
            namespace=namespace,
        )
        try:
            await self._create_idempotent(
                LIMIT_RANGES,
                templates.limit_range_manifest(namespace, self._templates),
                namespace=namespace,
            )
        except ClusterAPIError as exc:
            logger.warning(
                "Limit range creation failed in %s: %s",
                namespace,
                exc,
                extra={"namespace": namespace},
            )

    # ── Data tier ───────────────────────────────────────────────

    async def deploy_data_tier(self, namespace: str, store_id: str) -> None:
        """Secret, volume, StatefulSet and headless service for MariaDB.

        Returns once the create calls are issued; readiness is awaited
        separately with ``wait_for_data_tier_ready``.
        """
        password = generate_credential()
        await self._create_idempotent(
            SECRETS,
            templates.secret_manifest(
                namespace,
                templates.DB_SECRET_NAME,
                templates.database_secret_data(password),
            ),
            namespace=namespace,
        )
        await self._create_idempotent(
            PERSISTENT_VOLUME_CLAIMS,
            templates.pvc_manifest(
                namespace, templates.DB_PVC_NAME, self._templates.db_storage,
            ),
            namespace=namespace,
        )
        await self._create_idempotent(
            STATEFUL_SETS,
            templates.database_statefulset_manifest(namespace, self._templates),
            namespace=namespace,
        )
        await self._create_idempotent(
            SERVICES,
            templates.database_service_manifest(namespace),
            namespace=namespace,
        )
        logger.info(
            "Data tier deployed for store %s",
            store_id,
            extra={"store_id": store_id, "namespace": namespace},
        )

    # ── Application tier ────────────────────────────────────────

    async def deploy_application_tier(self, namespace: str, store_id: str) -> None:
        """Volume, Deployment and ClusterIP service for WordPress."""
        await self._create_idempotent(
            PERSISTENT_VOLUME_CLAIMS,
            templates.pvc_manifest(
                namespace, templates.APP_PVC_NAME, self._templates.app_storage,
            ),
            namespace=namespace,
        )
        await self._create_idempotent(
            DEPLOYMENTS,
            templates.wordpress_deployment_manifest(namespace, self._templates),
            namespace=namespace,
        )
        await self._create_idempotent(
            SERVICES,
            templates.wordpress_service_manifest(namespace),
            namespace=namespace,
        )
        logger.info(
            "Application tier deployed for store %s",
            store_id,
            extra={"store_id": store_id, "namespace": namespace},
        )

    async def create_public_route(self, namespace: str, store_id: str) -> str:
        """Ingress mapping ``<store_id>.<base_domain>`` to the app service.

        Returns the routed hostname.
        """
        host = store_hostname(store_id, self._base_domain)
        await self._create_idempotent(
            INGRESSES,
            templates.ingress_manifest(namespace, host, self._templates),
            namespace=namespace,
        )
        return host

    # ── Bootstrap job ───────────────────────────────────────────

    async def run_bootstrap_task(
        self,
        namespace: str,
        store_id: str,
        display_name: str,
        *,
        timeout_seconds: float,
    ) -> None:
        """Create the WooCommerce bootstrap job and wait for it to finish."""
        host = store_hostname(store_id, self._base_domain)
        await self._create_idempotent(
            SECRETS,
            templates.secret_manifest(
                namespace,
                templates.ADMIN_SECRET_NAME,
                {
                    templates.ADMIN_USER_KEY: templates.ADMIN_USER,
                    templates.ADMIN_PASSWORD_KEY: generate_credential(),
                },
            ),
            namespace=namespace,
        )
        await self._create_idempotent(
            JOBS,
            templates.bootstrap_job_manifest(
                namespace,
                host=host,
                display_name=display_name,
                t=self._templates,
            ),
            namespace=namespace,
        )
        await self.wait_for_bootstrap_task_completion(
            namespace, templates.BOOTSTRAP_JOB_NAME, timeout_seconds,
        )

    # ── Readiness ───────────────────────────────────────────────

    async def _workload_ready(
        self, kind: ResourceKind, namespace: str, name: str,
    ) -> bool:
        try:
            workload = await self._client.read(kind, name, namespace=namespace)
        except Exception:
            # Any read failure means "not ready yet".
            return False
        return replicas_ready(workload)

    async def is_application_tier_ready(self, namespace: str, name: str) -> bool:
        return await self._workload_ready(DEPLOYMENTS, namespace, name)

    async def is_data_tier_ready(self, namespace: str, name: str) -> bool:
        return await self._workload_ready(STATEFUL_SETS, namespace, name)

    async def wait_for_application_tier_ready(
        self, namespace: str, name: str, timeout_seconds: float,
    ) -> None:
        await poll_until(
            lambda: self.is_application_tier_ready(namespace, name),
            timeout_seconds=timeout_seconds,
            interval_seconds=self._poll_interval,
            description=f"deployment {name} to be ready in {namespace}",
        )
        logger.info(
            "Deployment %s is ready in %s",
            name,
            namespace,
            extra={"namespace": namespace, "resource_name": name},
        )

    async def wait_for_data_tier_ready(
        self, namespace: str, name: str, timeout_seconds: float,
    ) -> None:
        await poll_until(
            lambda: self.is_data_tier_ready(namespace, name),
            timeout_seconds=timeout_seconds,
            interval_seconds=self._poll_interval,
            description=f"StatefulSet {name} to be ready in {namespace}",
        )
        logger.info(
            "StatefulSet %s is ready in %s",
            name,
            namespace,
            extra={"namespace": namespace, "resource_name": name},
        )

    async def wait_for_bootstrap_task_completion(
        self, namespace: str, name: str, timeout_seconds: float,
    ) -> None:
        """Wait for the job to succeed.

        A not-found read is tolerated (the job may not be visible yet);
        any other read error aborts the wait. A failed pod fails the wait
        immediately with ``BootstrapTaskFailedError``.
        """

        async def job_succeeded() -> bool:
            try:
                job = await self._client.read(JOBS, name, namespace=namespace)
            except ClusterNotFoundError:
                return False
            status = job.get("status") or {}
            failed = status.get("failed") or 0
            if failed > 0:
                raise BootstrapTaskFailedError(namespace, name, failed)
            return (status.get("succeeded") or 0) >= 1

        await poll_until(
            job_succeeded,
            timeout_seconds=timeout_seconds,
            interval_seconds=self._poll_interval,
            description=f"job {name} to complete in {namespace}",
        )
        logger.info(
            "Job %s completed in %s",
            name,
            namespace,
            extra={"namespace": namespace, "resource_name": name},
        )
