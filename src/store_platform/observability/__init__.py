"""Observability infrastructure for the store platform.

Provides structured logging, Prometheus metrics, and request-ID
correlation middleware for the control-plane API.

Quick start::

    from store_platform.observability import configure_logging
    from store_platform.observability.middleware import (
        AccessMiddleware,
        RequestIdMiddleware,
    )
    from store_platform.observability.metrics import metrics_text

    configure_logging()
    app.add_middleware(AccessMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import (
    configure_logging,
    get_logger,
    request_id_ctx,
    store_context,
    store_id_ctx,
)
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "request_id_ctx",
    "store_context",
    "store_id_ctx",
]
