"""Store and store-event domain records.

A ``Store`` is one tenant storefront instance. Its namespace and public URLs
are derived from the store id once, at creation, and never recomputed:

  namespace   = store-<id>
  hostname    = <id>.<base_domain>
  storefront  = http://<hostname>
  admin       = http://<hostname>/wp-admin

``StoreEvent`` records are the per-store audit trail. They are immutable and
appended in creation order.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class StoreEngine(Enum):
    """Commerce platform a store runs."""

    WOOCOMMERCE = 'woocommerce'
    MEDUSA = 'medusa'


class StoreStatus(Enum):
    """Lifecycle status of a store."""

    PENDING = 'pending'
    PROVISIONING = 'provisioning'
    READY = 'ready'
    FAILED = 'failed'
    DELETING = 'deleting'


class EventType(Enum):
    """Severity of a store event."""

    INFO = 'info'
    WARNING = 'warning'
    ERROR = 'error'


NAMESPACE_PREFIX = 'store-'
ADMIN_PATH = '/wp-admin'


def store_namespace(store_id: str) -> str:
    """Isolation boundary name for a store."""
    return f'{NAMESPACE_PREFIX}{store_id}'


def store_hostname(store_id: str, base_domain: str) -> str:
    return f'{store_id}.{base_domain}'


@dataclass(frozen=True, slots=True)
class StoreUrls:
    storefront: str
    admin: str

    @classmethod
    def for_store(cls, store_id: str, base_domain: str) -> StoreUrls:
        host = store_hostname(store_id, base_domain)
        return cls(
            storefront=f'http://{host}',
            admin=f'http://{host}{ADMIN_PATH}',
        )


def new_store_id() -> str:
    """Short id: first 8 hex characters of a UUID4."""
    return uuid.uuid4().hex[:8]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Store:
    """Mutable store record owned by the orchestrator.

    ``generation`` is bumped when deletion starts so that a provisioning
    sequence started earlier can detect it has been superseded.
    """

    id: str
    name: str
    engine: StoreEngine
    namespace: str
    urls: StoreUrls
    status: StoreStatus = StoreStatus.PENDING
    error: str | None = None
    generation: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class StoreEvent:
    """Immutable audit entry for one store."""

    store_id: str
    type: EventType
    message: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=_now)


def create_pending_store(
    *,
    store_id: str,
    name: str,
    engine: StoreEngine,
    base_domain: str,
    now: datetime | None = None,
) -> Store:
    """Build a new store at ``pending`` with derived namespace and URLs."""
    now = now or _now()
    return Store(
        id=store_id,
        name=name,
        engine=engine,
        namespace=store_namespace(store_id),
        urls=StoreUrls.for_store(store_id, base_domain),
        status=StoreStatus.PENDING,
        created_at=now,
        updated_at=now,
    )


# ── Public JSON shape ─────────────────────────────────────────────────


def store_payload(store: Store) -> dict:
    """Serialize a store to the Control API shape."""
    payload = {
        'id': store.id,
        'name': store.name,
        'engine': store.engine.value,
        'status': store.status.value,
        'namespace': store.namespace,
        'urls': {
            'storefront': store.urls.storefront,
            'admin': store.urls.admin,
        },
        'createdAt': store.created_at.isoformat(),
        'updatedAt': store.updated_at.isoformat(),
    }
    if store.error is not None:
        payload['error'] = store.error
    return payload


def event_payload(event: StoreEvent) -> dict:
    return {
        'id': event.id,
        'storeId': event.store_id,
        'type': event.type.value,
        'message': event.message,
        'timestamp': event.timestamp.isoformat(),
    }
