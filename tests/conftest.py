# tests/conftest.py
"""Pytest configuration and fixtures"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from lcs.core.engine.adapters import Adapter, AdapterPayload, AdapterResponse
from lcs.core.engine.domain import (
    Channel,
    DataSource,
    DeliveryStatus,
    Frame,
    FrameType,
    LifecyclePhase,
    Signal,
)
from lcs.core.engine.orbt import OrbtHandler
from lcs.core.gates.types import (
    CapacityContext,
    FreshnessContext,
    GateContexts,
    SourceFreshness,
    SuppressionContext,
    SuppressionState,
)
from lcs.core.pipeline.orchestrator import PipelineOrchestrator
from lcs.infra.memory_stores import (
    InMemoryErrorLog,
    InMemoryEventLog,
    InMemoryFrameRepository,
    InMemoryIntelligenceRepository,
)
from lcs.infra.metrics import get_metrics_collector
from lcs.transport.adapter_registry import AdapterRegistry

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
COMPANY_ID = "CO-0001"
SIGNAL_HASH = "sig-hash-abc123"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeAdapter(Adapter):
    """Scripted adapter: returns (or raises) the queued outcomes in order."""

    def __init__(self, channel: Channel, *outcomes):
        self._channel = Channel(channel)
        self.outcomes = list(outcomes)
        self.payloads: list[AdapterPayload] = []

    @property
    def channel(self) -> Channel:
        return self._channel

    async def send(self, payload: AdapterPayload) -> AdapterResponse:
        self.payloads.append(payload)
        outcome = self.outcomes.pop(0) if self.outcomes else delivered()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def delivered(message_id: str = "provider-msg-1") -> AdapterResponse:
    return AdapterResponse(
        success=True,
        delivery_status=DeliveryStatus.SENT,
        adapter_message_id=message_id,
        raw_response={"id": message_id},
    )


def rejected(message: str = "Recipient rejected") -> AdapterResponse:
    return AdapterResponse.failed(message)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_signal(**overrides) -> Signal:
    fields: dict[str, Any] = dict(
        spoke_id="spoke-dol",
        signal_set_hash=SIGNAL_HASH,
        signal_category="RENEWAL_WINDOW",
        sovereign_company_id=COMPANY_ID,
        lifecycle_phase=LifecyclePhase.OUTREACH,
        signal_data={"subject": "Quick question", "body_text": "Hello there", "body_html": "<p>Hello</p>"},
    )
    fields.update(overrides)
    return Signal(**fields)


def make_snapshot(tier: int = 2, *, fetched_at: Optional[datetime] = None, **overrides) -> dict[str, Any]:
    fetched_at = fetched_at or NOW - timedelta(days=1)
    snapshot: dict[str, Any] = {
        "sovereign_company_id": COMPANY_ID,
        "intelligence_tier": tier,
        "ceo_entity_id": "ENT-CEO-1",
        "ceo_email": "ceo@acme.example",
        "ceo_linkedin_url": "https://linkedin.com/in/acme-ceo",
        "cfo_entity_id": "ENT-CFO-1",
        "cfo_email": "cfo@acme.example",
        "people_fetched_at": fetched_at,
        "dol_fetched_at": fetched_at,
        "blog_fetched_at": fetched_at,
        "sitemap_fetched_at": fetched_at,
    }
    snapshot.update(overrides)
    return snapshot


def outreach_frames() -> list[Frame]:
    return [
        Frame(
            frame_id="OUT-HAMMER-T1",
            frame_name="Hammer, full intel",
            lifecycle_phase=LifecyclePhase.OUTREACH,
            frame_type=FrameType.HAMMER,
            tier=1,
            required_fields=("renewal_date", "carrier_name"),
            fallback_frame_id="OUT-POND-T4",
        ),
        Frame(
            frame_id="OUT-HAMMER-T2",
            frame_name="Hammer, partial intel",
            lifecycle_phase=LifecyclePhase.OUTREACH,
            frame_type=FrameType.HAMMER,
            tier=2,
            required_fields=("renewal_date",),
            fallback_frame_id="OUT-POND-T4",
        ),
        Frame(
            frame_id="OUT-POND-T4",
            frame_name="Pond, light touch",
            lifecycle_phase=LifecyclePhase.OUTREACH,
            frame_type=FrameType.POND,
            tier=4,
        ),
        Frame(
            frame_id="OUT-NEWSLETTER-T5",
            frame_name="Newsletter",
            lifecycle_phase=LifecyclePhase.OUTREACH,
            frame_type=FrameType.NEWSLETTER,
            tier=5,
        ),
    ]


def fresh_sources(now: datetime = NOW, **stale_days: int) -> tuple[SourceFreshness, ...]:
    """All sources fetched yesterday, except ``PEOPLE=40``-style overrides (age in days)."""
    windows = {"PEOPLE": 30, "DOL": 90, "BLOG": 60, "SITEMAP": 60}
    return tuple(
        SourceFreshness(
            source=source,
            data_fetched_at=now - timedelta(days=stale_days.get(source.value, 1)),
            freshness_window_days=windows[source.value],
        )
        for source in DataSource
    )


def make_contexts(
    *,
    capacity: Optional[dict] = None,
    suppression: Optional[dict] = None,
    sources: Optional[tuple[SourceFreshness, ...]] = None,
) -> GateContexts:
    cap = dict(
        founder_calendar_available=True,
        agent_number="AGENT-7",
        agent_daily_cap=50,
        agent_sent_today=0,
        adapter_daily_cap=500,
        adapter_sent_today=0,
    )
    cap.update(capacity or {})
    sup = dict(
        suppression_state=SuppressionState.ACTIVE,
        last_contact_at=None,
        min_contact_interval_days=14,
        company_sends_this_week=0,
        company_weekly_cap=3,
    )
    sup.update(suppression or {})
    return GateContexts(
        capacity=CapacityContext(**cap),
        suppression=SuppressionContext(**sup),
        freshness=FreshnessContext(current_tier=5, sources=sources or fresh_sources()),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield


@pytest.fixture
def event_log() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def error_log() -> InMemoryErrorLog:
    return InMemoryErrorLog()


@pytest.fixture
def intelligence() -> InMemoryIntelligenceRepository:
    return InMemoryIntelligenceRepository({COMPANY_ID: make_snapshot()})


@pytest.fixture
def frames() -> InMemoryFrameRepository:
    return InMemoryFrameRepository(outreach_frames())


@pytest.fixture
def mg_adapter() -> FakeAdapter:
    return FakeAdapter(Channel.MG)


@pytest.fixture
def hr_adapter() -> FakeAdapter:
    return FakeAdapter(Channel.HR)


@pytest.fixture
def registry(mg_adapter, hr_adapter) -> AdapterRegistry:
    return AdapterRegistry([mg_adapter, hr_adapter, FakeAdapter(Channel.SH)])


@pytest.fixture
def orchestrator(event_log, error_log, intelligence, frames, registry) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        event_log=event_log,
        intelligence=intelligence,
        frames=frames,
        adapters=registry,
        orbt=OrbtHandler(error_log),
        sender_email="outreach@mg.example.com",
        sender_domain="mg.example.com",
    )

