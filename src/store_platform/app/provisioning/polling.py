"""Fixed-interval "poll until predicate or deadline" primitive.

Every readiness and completion wait in the provisioner goes through
``poll_until``. The cadence is fixed (no backoff); the predicate is awaited
once per interval and the calling task sleeps between attempts so other
stores' sequences and foreground requests keep running.

A predicate returns True when done and False to keep waiting. Raising from
the predicate aborts the wait with that exception.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from .errors import ProvisioningTimeoutError

Predicate = Callable[[], Awaitable[bool]]

DEFAULT_POLL_INTERVAL_SECONDS = 5.0


async def poll_until(
    predicate: Predicate,
    *,
    timeout_seconds: float,
    description: str,
    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Await ``predicate`` every ``interval_seconds`` until it returns True.

    Raises:
        ProvisioningTimeoutError: The deadline elapsed without a True result.
        Exception: Anything raised by ``predicate``.
    """
    if timeout_seconds < 0:
        raise ValueError('timeout_seconds must be >= 0')
    if interval_seconds < 0:
        raise ValueError('interval_seconds must be >= 0')

    deadline = clock() + timeout_seconds
    while clock() < deadline:
        if await predicate():
            return
        await sleep(interval_seconds)

    raise ProvisioningTimeoutError(description, timeout_seconds)
