"""Error taxonomy for store provisioning.

Every error carries the API ``code`` and HTTP ``status_code`` used by the
control-plane error envelope. Cluster transport errors live beside the
cluster client (``providers.cluster_client``) and are mapped separately.
"""

from __future__ import annotations


class StorePlatformError(Exception):
    """Base class for store-platform domain errors."""

    code = 'INTERNAL_ERROR'
    status_code = 500

    def __init__(self, message: str, *, store_id: str | None = None) -> None:
        self.message = message
        self.store_id = store_id
        super().__init__(message)


class StoreValidationError(StorePlatformError):
    """Client input rejected before any state is created."""

    code = 'VALIDATION_ERROR'
    status_code = 400


class StoreNotFoundError(StorePlatformError):
    """Referenced store does not exist."""

    code = 'NOT_FOUND'
    status_code = 404

    def __init__(self, store_id: str) -> None:
        super().__init__('Store not found', store_id=store_id)


class ProvisioningTimeoutError(StorePlatformError, TimeoutError):
    """A bounded readiness or completion wait exceeded its deadline."""

    code = 'TIMEOUT'
    status_code = 504

    def __init__(self, description: str, timeout_seconds: float) -> None:
        self.description = description
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f'Timeout waiting for {description} '
            f'(after {timeout_seconds:g}s)'
        )


class UnimplementedEngineError(StorePlatformError, NotImplementedError):
    """The requested engine is reserved but has no provisioning strategy."""

    code = 'ENGINE_NOT_IMPLEMENTED'
    status_code = 501

    def __init__(self, engine: str, message: str | None = None) -> None:
        self.engine = engine
        super().__init__(
            message or f'Engine {engine!r} is not yet implemented'
        )


class BootstrapTaskFailedError(StorePlatformError):
    """The one-shot bootstrap job reported a failed pod."""

    code = 'BOOTSTRAP_FAILED'
    status_code = 502

    def __init__(self, namespace: str, job_name: str, failed: int) -> None:
        self.namespace = namespace
        self.job_name = job_name
        self.failed = failed
        super().__init__(
            f'Bootstrap job {job_name} failed in {namespace} '
            f'({failed} failed pod(s))'
        )
