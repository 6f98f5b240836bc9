# tests/test_http_app.py
"""HTTP surface tests: health, metrics, POST /signals."""
from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from lcs.config import Settings, settings
from lcs.core.engine.domain import Channel, utcnow
from lcs.infra.metrics import get_metrics_collector
from lcs.infra.memory_stores import (
    InMemoryContextStore,
    InMemoryErrorLog,
    InMemoryEventLog,
    InMemoryFrameRepository,
    InMemoryIntelligenceRepository,
    InMemorySignalQueue,
)
from lcs.transport.adapter_registry import AdapterRegistry
from lcs.transport.http_app import app, build_services

from conftest import COMPANY_ID, FakeAdapter, make_snapshot, outreach_frames, rejected

ADMIN_TOKEN = "aB3cD5eF7gH9iJ1kL3mN5oP7qR9sT1uX"
AUTH = {"Authorization": f"Bearer {ADMIN_TOKEN}"}

SIGNAL_BODY = {
    "spoke_id": "spoke-dol",
    "signal_set_hash": "sig-hash-http",
    "signal_category": "RENEWAL_WINDOW",
    "sovereign_company_id": COMPANY_ID,
    "lifecycle_phase": "OUTREACH",
    "signal_data": {"subject": "Hi", "body_text": "Hello"},
}


@pytest.fixture
def mg():
    return FakeAdapter(Channel.MG)


@pytest.fixture
def services(mg):
    event_log = InMemoryEventLog()
    intelligence = InMemoryIntelligenceRepository({
        # Requests run on the wall clock
        COMPANY_ID: make_snapshot(fetched_at=utcnow() - timedelta(days=1)),
    })
    return build_services(
        event_log=event_log,
        error_log=InMemoryErrorLog(),
        intelligence=intelligence,
        frames=InMemoryFrameRepository(outreach_frames()),
        store=InMemoryContextStore(event_log),
        queue=InMemorySignalQueue(),
        adapters=AdapterRegistry([mg, FakeAdapter(Channel.HR), FakeAdapter(Channel.SH)]),
        config=Settings(mailgun_sender_domain="mg.example.com"),
    )


@pytest.fixture
def client(services, monkeypatch):
    monkeypatch.setattr(settings, "admin_token", ADMIN_TOKEN)
    monkeypatch.setattr(settings, "metrics_token", None)
    monkeypatch.setattr(app.state, "services", services, raising=False)
    return TestClient(app)


class TestPublicEndpoints:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}
        assert "X-Request-ID" in resp.headers

    def test_ready_reports_unhealthy_database(self, client):
        checker = MagicMock()
        checker.run_checks = AsyncMock(return_value={"status": "unhealthy", "checks": []})
        with patch("lcs.transport.http_app.get_async_health_checker", return_value=checker):
            resp = client.get("/ready")
        assert resp.status_code == 503

    def test_ready_healthy(self, client):
        checker = MagicMock()
        checker.run_checks = AsyncMock(return_value={"status": "healthy", "checks": []})
        with patch("lcs.transport.http_app.get_async_health_checker", return_value=checker):
            assert client.get("/ready").status_code == 200

    def test_unknown_route(self, client):
        resp = client.get("/wp-admin")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not found"}


class TestMetricsEndpoint:
    def test_metrics_open_without_token(self, client):
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "counters" in resp.json()

    def test_metrics_token_enforced(self, client, monkeypatch):
        monkeypatch.setattr(settings, "metrics_token", "metrics-secret")
        assert client.get("/metrics").status_code == 401
        ok = client.get("/metrics", headers={"Authorization": "Bearer metrics-secret"})
        assert ok.status_code == 200

    def test_metrics_disabled(self, client, monkeypatch):
        monkeypatch.setattr(settings, "enable_metrics", False)
        assert client.get("/metrics").status_code == 404


class TestPostSignal:
    def test_requires_token(self, client):
        assert client.post("/signals", json=SIGNAL_BODY).status_code == 401
        bad = client.post("/signals", json=SIGNAL_BODY, headers={"Authorization": "Bearer nope"})
        assert bad.status_code == 401

    def test_inline_dispatch_delivers(self, client, mg, services):
        resp = client.post("/signals", json=SIGNAL_BODY, headers=AUTH)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["outcome"] == "DELIVERED"
        assert data["steps_completed"] == 7
        assert data["channel"] == "MG"
        assert data["communication_id"].startswith("LCS-OUT-")
        assert mg.payloads[0].sender_email == "noreply@mg.example.com"
        assert len(services.event_log.events) == 7

    def test_inline_signal_counted_once(self, client):
        client.post("/signals", json=SIGNAL_BODY, headers=AUTH)

        counters = get_metrics_collector().get_metrics()["counters"]
        assert counters["lcs_signals_received_total{phase=OUTREACH}"] == 1

    def test_failed_delivery_reports_orbt(self, client, mg):
        mg.outcomes.append(rejected("Mailbox full"))

        data = client.post("/signals", json=SIGNAL_BODY, headers=AUTH).json()

        assert data["success"] is False
        assert data["outcome"] == "DELIVERY_FAILED"
        assert data["failure_reason"] == "Mailbox full"
        assert data["orbt"]["action"] == "AUTO_RETRY"
        assert data["orbt"]["next_attempt"] == 2

    def test_malformed_signal_is_audited_not_rejected(self, client, services):
        body = {k: v for k, v in SIGNAL_BODY.items() if k != "sovereign_company_id"}

        data = client.post("/signals", json=body, headers=AUTH).json()

        assert data["outcome"] == "REJECTED"
        assert data["steps_completed"] == 1
        assert [e.event_type.value for e in services.event_log.events] == ["SIGNAL_DROPPED"]

    def test_invalid_phase_is_422(self, client):
        body = {**SIGNAL_BODY, "lifecycle_phase": "NURTURE"}
        assert client.post("/signals", json=body, headers=AUTH).status_code == 422

    def test_enqueue(self, client, services, mg):
        resp = client.post("/signals", json={**SIGNAL_BODY, "enqueue": True}, headers=AUTH)

        assert resp.status_code == 202
        queue_id = resp.json()["queue_id"]
        assert resp.json()["queued"] is True
        assert services.queue.items[queue_id].signal.signal_set_hash == "sig-hash-http"
        assert not mg.payloads

    def test_services_not_ready(self, client, monkeypatch):
        monkeypatch.setattr(app.state, "services", None)
        assert client.post("/signals", json=SIGNAL_BODY, headers=AUTH).status_code == 503
