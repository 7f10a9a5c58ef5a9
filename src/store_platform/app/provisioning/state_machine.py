"""Store status transitions.

Implements the store lifecycle:
  pending -> provisioning -> ready
  pending | provisioning -> failed
  pending | provisioning | ready | failed -> deleting
  deleting -> failed            (cluster teardown failed)
  deleting -> (removed from the registry)

``ready`` and ``failed`` are terminal for provisioning; the only way out is
deletion.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from types import MappingProxyType

from .models import Store, StoreStatus

ALLOWED_TRANSITIONS = MappingProxyType(
    {
        StoreStatus.PENDING: frozenset(
            {StoreStatus.PROVISIONING, StoreStatus.FAILED, StoreStatus.DELETING}
        ),
        StoreStatus.PROVISIONING: frozenset(
            {StoreStatus.READY, StoreStatus.FAILED, StoreStatus.DELETING}
        ),
        StoreStatus.READY: frozenset({StoreStatus.DELETING}),
        StoreStatus.FAILED: frozenset({StoreStatus.FAILED, StoreStatus.DELETING}),
        StoreStatus.DELETING: frozenset({StoreStatus.FAILED, StoreStatus.DELETING}),
    }
)

TERMINAL_STATUSES = frozenset({StoreStatus.READY, StoreStatus.FAILED})


class InvalidStatusTransition(ValueError):
    """Raised for a status change the lifecycle does not allow."""

    def __init__(self, from_status: StoreStatus, to_status: StoreStatus) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f'invalid status transition: {from_status.value!r} -> '
            f'{to_status.value!r}'
        )


def can_transition(from_status: StoreStatus, to_status: StoreStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def transition(
    store: Store,
    to_status: StoreStatus,
    *,
    now: datetime,
    error: str | None = None,
) -> Store:
    """Return a copy of ``store`` moved to ``to_status``.

    ``updated_at`` is refreshed on every transition. ``error`` is only
    written when given, so the latest failure message wins and a later
    non-failure transition never clears it.
    """
    if not can_transition(store.status, to_status):
        raise InvalidStatusTransition(store.status, to_status)
    return replace(
        store,
        status=to_status,
        updated_at=now,
        error=error if error is not None else store.error,
    )
