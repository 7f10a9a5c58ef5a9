"""Tests for logging configuration, path normalization and store metrics."""

import asyncio
import json
import logging

import pytest

from store_platform.app.inmemory import (
    InMemoryClusterClient,
    InMemoryStoreEventLog,
    InMemoryStoreRepository,
)
from store_platform.app.providers.cluster_provisioner import ClusterProvisioner
from store_platform.app.provisioning.engines import ProvisioningTimeouts
from store_platform.app.provisioning.models import StoreEngine
from store_platform.app.provisioning.orchestrator import StoreOrchestrator
from store_platform.observability import logging as obs_logging
from store_platform.observability.metrics import (
    STORE_PROVISIONING_TOTAL,
    metrics_text,
)
from store_platform.observability.middleware import normalize_path


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/api/stores", "/api/stores"),
        ("/api/stores/abc12345", "/api/stores/{id}"),
        ("/api/stores/abc12345/events", "/api/stores/{id}/events"),
        ("/api/health/live", "/api/health/live"),
    ],
)
def test_normalize_path(path, expected):
    assert normalize_path(path) == expected


def test_configure_logging_renders_extra_fields_as_json(monkeypatch, capsys):
    monkeypatch.setattr(obs_logging, "_configured", False)
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        obs_logging.configure_logging(level="INFO", json_output=True)
        token = obs_logging.request_id_ctx.set("req-12345678")
        try:
            logging.getLogger("store_platform.test").info(
                "Created %s", "thing", extra={"namespace": "store-abc12345"},
            )
            with obs_logging.store_context("abc12345"):
                logging.getLogger("store_platform.test").warning("Inside store")
        finally:
            obs_logging.request_id_ctx.reset(token)

        first, second = [
            json.loads(line)
            for line in capsys.readouterr().out.strip().splitlines()[-2:]
        ]
        assert first["event"] == "Created thing"
        assert first["namespace"] == "store-abc12345"
        assert first["request_id"] == "req-12345678"
        assert first["level"] == "info"
        assert "store_id" not in first
        assert second["store_id"] == "abc12345"
        assert second["level"] == "warning"
        assert obs_logging.store_id_ctx.get() is None
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_configure_logging_is_idempotent(monkeypatch):
    monkeypatch.setattr(obs_logging, "_configured", True)
    root = logging.getLogger()
    before = root.handlers[:]

    obs_logging.configure_logging()

    assert root.handlers == before


def test_metrics_text_content_type():
    body, content_type = metrics_text()

    assert isinstance(body, bytes)
    assert content_type.startswith("text/plain")


def _counter(engine: str, outcome: str) -> float:
    return STORE_PROVISIONING_TOTAL.labels(engine=engine, outcome=outcome)._value.get()


@pytest.mark.asyncio
async def test_provisioning_outcomes_are_counted():
    cluster = InMemoryClusterClient()
    orchestrator = StoreOrchestrator(
        store_repo=InMemoryStoreRepository(),
        event_log=InMemoryStoreEventLog(),
        provisioner=ClusterProvisioner(
            cluster, base_domain="shop.test", poll_interval_seconds=0,
        ),
        base_domain="shop.test",
        timeouts=ProvisioningTimeouts(1, 1, 1),
    )
    ready_before = _counter("woocommerce", "ready")
    failed_before = _counter("medusa", "failed")

    await orchestrator.create_store("A", StoreEngine.WOOCOMMERCE)
    await orchestrator.create_store("B", StoreEngine.MEDUSA)
    await orchestrator.wait_idle()

    assert _counter("woocommerce", "ready") == ready_before + 1
    assert _counter("medusa", "failed") == failed_before + 1


@pytest.mark.asyncio
async def test_store_events_are_logged_at_matching_level(caplog):
    orchestrator = StoreOrchestrator(
        store_repo=InMemoryStoreRepository(),
        event_log=InMemoryStoreEventLog(),
        provisioner=ClusterProvisioner(
            InMemoryClusterClient(), base_domain="shop.test", poll_interval_seconds=0,
        ),
        base_domain="shop.test",
    )

    with caplog.at_level(logging.INFO, logger="store_platform"):
        store = await orchestrator.create_store("Acme", StoreEngine.MEDUSA)
        await orchestrator.wait_idle()
        await asyncio.sleep(0)

    warnings = [
        r for r in caplog.records
        if r.levelno == logging.WARNING
        and r.getMessage() == (
            f"[store {store.id}] warning: MedusaJS provisioning is not yet implemented"
        )
    ]
    assert len(warnings) == 1
    assert any(
        r.levelno == logging.ERROR
        and r.getMessage().startswith(f"[store {store.id}] error: Provisioning failed")
        for r in caplog.records
    )


class _StoreIdCapture(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.store_ids: list[str | None] = []

    def emit(self, record):
        self.store_ids.append(obs_logging.store_id_ctx.get())


@pytest.mark.asyncio
async def test_provisioner_logs_carry_store_id():
    capture = _StoreIdCapture()
    provisioner_logger = logging.getLogger(
        "store_platform.app.providers.cluster_provisioner"
    )
    saved_level = provisioner_logger.level
    provisioner_logger.setLevel(logging.DEBUG)
    provisioner_logger.addHandler(capture)
    try:
        orchestrator = StoreOrchestrator(
            store_repo=InMemoryStoreRepository(),
            event_log=InMemoryStoreEventLog(),
            provisioner=ClusterProvisioner(
                InMemoryClusterClient(), base_domain="shop.test", poll_interval_seconds=0,
            ),
            base_domain="shop.test",
        )
        store = await orchestrator.create_store("Acme", StoreEngine.WOOCOMMERCE)
        await orchestrator.wait_idle()
        await orchestrator.delete_store(store.id)
    finally:
        provisioner_logger.removeHandler(capture)
        provisioner_logger.setLevel(saved_level)

    assert capture.store_ids
    assert set(capture.store_ids) == {store.id}
    assert obs_logging.store_id_ctx.get() is None
