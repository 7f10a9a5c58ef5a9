"""Structured logging for the store platform.

One structlog pipeline renders every log line, whether it comes from a
structlog logger or a plain ``logging.getLogger(__name__)`` logger with
``extra={...}``. Two context variables correlate lines without threading ids
through call signatures:

- ``request_id_ctx`` is set by ``RequestIdMiddleware`` for the duration of an
  HTTP request.
- ``store_id_ctx`` is set by the orchestrator around a provisioning sequence
  or a deletion, so provisioner and cluster-client lines carry the store id.

Usage::

    from store_platform.observability.logging import configure_logging, store_context

    configure_logging(level="INFO", json_output=True)  # once, at startup
    with store_context("3f2a9c1d"):
        logger.info("Creating namespace")  # -> {"store_id": "3f2a9c1d", ...}
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
store_id_ctx: ContextVar[str | None] = ContextVar("store_id", default=None)

_configured = False

# Chatty libraries capped at these levels.
_LIBRARY_LEVELS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


@contextmanager
def store_context(store_id: str) -> Iterator[None]:
    """Tag every log line emitted inside the block with ``store_id``."""
    token = store_id_ctx.set(store_id)
    try:
        yield
    finally:
        store_id_ctx.reset(token)


def _add_correlation_ids(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Add request and store ids from context unless the call set them."""
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict.setdefault("request_id", rid)
    sid = store_id_ctx.get()
    if sid is not None:
        event_dict.setdefault("store_id", sid)
    return event_dict


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Install the structlog pipeline on the root logger.

    Only the first call has an effect.

    Args:
        level: Log level name. Defaults to ``LOG_LEVEL`` or INFO.
        json_output: JSON lines when True, console rendering when False.
            Defaults to ``LOG_FORMAT`` (``json`` unless set otherwise).
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") == "json"

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_correlation_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        # stdlib records: lift ``extra={...}`` fields into the event dict.
        foreign_pre_chain=[*shared_processors, structlog.stdlib.ExtraAdder()],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name, lib_level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(lib_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
