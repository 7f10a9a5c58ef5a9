"""HTTP middleware for the control-plane API.

``RequestIdMiddleware`` correlates log lines with a request;
``AccessMiddleware`` records the Prometheus HTTP metrics and writes one
``request_completed`` line per request. Register both with
``app.add_middleware()``, request-ID last so it runs outermost.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Caller-supplied ids are trusted only in this shape.
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-]{8,128}$")

# Store ids are free-form path segments; one label per route instead.
_ROUTE_TEMPLATES = (
    (re.compile(r"^/api/stores/[^/]+/events$"), "/api/stores/{id}/events"),
    (re.compile(r"^/api/stores/[^/]+$"), "/api/stores/{id}"),
)


def normalize_path(path: str) -> str:
    """Map a concrete request path to its route template for metric labels."""
    for pattern, template in _ROUTE_TEMPLATES:
        if pattern.match(path):
            return template
    return path


def _resolve_request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _REQUEST_ID_PATTERN.match(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Reuse a well-formed ``X-Request-ID`` or mint one, and echo it back.

    The id is bound to ``request_id_ctx`` while the request is handled, so
    every log line from route handlers carries it. Provisioning tasks started
    by a request inherit it as well.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        rid = _resolve_request_id(request)
        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response


class AccessMiddleware(BaseHTTPMiddleware):
    """Prometheus HTTP metrics plus one access-log line per request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        method = request.method
        route = normalize_path(request.url.path)
        status = "500"

        HTTP_REQUESTS_IN_FLIGHT.inc()
        started = time.perf_counter()
        try:
            response = await call_next(request)
            status = str(response.status_code)
        finally:
            elapsed = time.perf_counter() - started
            HTTP_REQUESTS_IN_FLIGHT.dec()
            HTTP_REQUESTS_TOTAL.labels(method=method, path=route, status=status).inc()
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=route).observe(elapsed)

        logger.info(
            "request_completed",
            method=method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(elapsed * 1000, 2),
            client=request.client.host if request.client else None,
        )
        return response
