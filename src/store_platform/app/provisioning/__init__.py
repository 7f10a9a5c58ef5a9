"""Store lifecycle contracts: models, errors, state machine, polling."""

from .errors import (
    BootstrapTaskFailedError,
    ProvisioningTimeoutError,
    StoreNotFoundError,
    StorePlatformError,
    StoreValidationError,
    UnimplementedEngineError,
)
from .models import (
    EventType,
    Store,
    StoreEngine,
    StoreEvent,
    StoreStatus,
    StoreUrls,
    create_pending_store,
    event_payload,
    store_hostname,
    store_namespace,
    store_payload,
)
from .polling import DEFAULT_POLL_INTERVAL_SECONDS, poll_until
from .state_machine import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    InvalidStatusTransition,
    can_transition,
    transition,
)

__all__ = [
    'ALLOWED_TRANSITIONS',
    'BootstrapTaskFailedError',
    'DEFAULT_POLL_INTERVAL_SECONDS',
    'EventType',
    'InvalidStatusTransition',
    'ProvisioningTimeoutError',
    'Store',
    'StoreEngine',
    'StoreEvent',
    'StoreNotFoundError',
    'StorePlatformError',
    'StoreStatus',
    'StoreUrls',
    'StoreValidationError',
    'TERMINAL_STATUSES',
    'UnimplementedEngineError',
    'can_transition',
    'create_pending_store',
    'event_payload',
    'poll_until',
    'store_hostname',
    'store_namespace',
    'store_payload',
    'transition',
]
