# tests/test_context_assembler.py
"""Tests for gate context assembly from the event log, adapter registry and snapshots"""
from datetime import timedelta

import pytest

from lcs.config import Settings
from lcs.core.engine.domain import AdapterHealth, AuditEvent, Channel, DataSource, EventType, LifecyclePhase
from lcs.core.engine.ports import AdapterStatus
from lcs.core.gates.types import SuppressionState
from lcs.infra.context_assembler import ContextAssembler, _parse_timestamp, start_of_utc_day
from lcs.infra.memory_stores import InMemoryContextStore

from conftest import COMPANY_ID, NOW, make_signal, make_snapshot


def _event(event_type=EventType.DELIVERY_SENT, *, at=NOW, entity_id="ENT-CEO-1", **overrides):
    fields = dict(
        sovereign_company_id=COMPANY_ID,
        signal_set_hash="sig-hash-old",
        lifecycle_phase=LifecyclePhase.OUTREACH,
        event_type=event_type,
        step_number=7,
        step_name="Log Delivery",
        entity_id=entity_id,
        channel=Channel.MG,
        agent_number="AGENT-7",
        created_at=at,
    )
    fields.update(overrides)
    return AuditEvent(**fields)


@pytest.fixture
def store(event_log):
    return InMemoryContextStore(event_log)


@pytest.fixture
def assembler(store, intelligence):
    config = Settings(
        agent_daily_cap=20,
        company_weekly_cap=4,
        min_contact_interval_days=10,
        freshness_window_dol=45,
        default_agent_number="AGENT-DEFAULT",
    )
    return ContextAssembler(store, intelligence, config)


class TestHelpers:
    def test_start_of_utc_day(self):
        assert start_of_utc_day(NOW) == NOW.replace(hour=0, minute=0)

    def test_parse_timestamp(self):
        assert _parse_timestamp(None) is None
        assert _parse_timestamp(NOW) is NOW
        assert _parse_timestamp("2026-03-01T12:00:00Z") == NOW - timedelta(days=1)
        assert _parse_timestamp("yesterday-ish") is None


class TestCapacityContext:
    @pytest.mark.asyncio
    async def test_counts_only_todays_sends(self, assembler, event_log):
        event_log.events.extend([
            _event(at=NOW - timedelta(hours=2)),
            _event(EventType.DELIVERY_SUCCESS, at=NOW - timedelta(hours=1), channel=Channel.HR),
            _event(at=NOW - timedelta(days=1)),
            _event(EventType.ADAPTER_CALLED, at=NOW - timedelta(hours=1)),
        ])

        ctx = (await assembler.assemble(make_signal(agent_number="AGENT-7"), Channel.MG, now=NOW)).capacity

        assert ctx.agent_number == "AGENT-7"
        assert ctx.agent_daily_cap == 20
        assert ctx.agent_sent_today == 2
        assert ctx.adapter_sent_today == 1
        assert ctx.founder_calendar_available is True

    @pytest.mark.asyncio
    async def test_default_agent(self, assembler):
        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).capacity
        assert ctx.agent_number == "AGENT-DEFAULT"

    @pytest.mark.asyncio
    async def test_adapter_status_from_registry(self, assembler, store):
        store.set_adapter_status(AdapterStatus(Channel.MG, AdapterHealth.PAUSED, daily_cap=100))

        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).capacity

        assert ctx.adapter_health_status is AdapterHealth.PAUSED
        assert ctx.adapter_daily_cap == 100

    @pytest.mark.asyncio
    async def test_unregistered_adapter_is_healthy_and_unlimited(self, assembler):
        ctx = (await assembler.assemble(make_signal(), Channel.SH, now=NOW)).capacity
        assert ctx.adapter_health_status is AdapterHealth.HEALTHY
        assert ctx.adapter_daily_cap is None


class TestSuppressionContext:
    @pytest.mark.asyncio
    async def test_fresh_recipient_is_active(self, assembler):
        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression

        assert ctx.suppression_state is SuppressionState.ACTIVE
        assert ctx.last_contact_at is None
        assert ctx.company_sends_this_week == 0
        assert ctx.company_weekly_cap == 4
        assert ctx.min_contact_interval_days == 10
        assert ctx.channel is Channel.MG
        assert ctx.lifecycle_phase is LifecyclePhase.OUTREACH

    @pytest.mark.asyncio
    async def test_recent_send_cools_recipient(self, assembler, event_log):
        sent_at = NOW - timedelta(days=3)
        event_log.events.append(_event(at=sent_at))

        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression

        assert ctx.suppression_state is SuppressionState.COOLED
        assert ctx.last_contact_at == sent_at
        assert ctx.company_sends_this_week == 1

    @pytest.mark.asyncio
    async def test_old_send_is_active(self, assembler, event_log):
        event_log.events.append(_event(at=NOW - timedelta(days=30)))

        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression

        assert ctx.suppression_state is SuppressionState.ACTIVE
        assert ctx.company_sends_this_week == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_suppresses(self, assembler, event_log):
        event_log.events.extend([
            _event(at=NOW - timedelta(days=40)),
            _event(EventType.DELIVERY_UNSUBSCRIBED, at=NOW - timedelta(days=39), step_number=8),
        ])

        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression

        assert ctx.suppression_state is SuppressionState.SUPPRESSED
        assert ctx.unsubscribed is True
        assert ctx.hard_bounced is False

    @pytest.mark.asyncio
    async def test_hard_flags_survive_later_activity(self, assembler, event_log):
        event_log.events.extend([
            _event(EventType.DELIVERY_BOUNCED, at=NOW - timedelta(days=60)),
            _event(EventType.OPENED, at=NOW - timedelta(days=20)),
        ])

        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression

        assert ctx.hard_bounced is True
        assert ctx.suppression_state is SuppressionState.ACTIVE

    @pytest.mark.asyncio
    async def test_parked_recipient(self, assembler, event_log):
        event_log.events.append(_event(EventType.RECIPIENT_PARKED, at=NOW - timedelta(days=1)))
        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression
        assert ctx.suppression_state is SuppressionState.PARKED

    @pytest.mark.asyncio
    async def test_gate_block_rows_ignored(self, assembler, event_log):
        event_log.events.append(
            _event(EventType.COMPOSITION_BLOCKED, at=NOW - timedelta(days=1), gate="SUPPRESSION")
        )
        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression
        assert ctx.suppression_state is SuppressionState.ACTIVE

    @pytest.mark.asyncio
    async def test_other_entities_do_not_leak(self, assembler, event_log):
        event_log.events.append(_event(EventType.DELIVERY_COMPLAINED, entity_id="ENT-SOMEONE-ELSE"))
        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression
        assert ctx.complained is False

    @pytest.mark.asyncio
    async def test_never_contact_flag_from_snapshot(self, assembler, intelligence):
        intelligence.put(COMPANY_ID, make_snapshot(ceo_never_contact=True))
        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression
        assert ctx.never_contact is True

    @pytest.mark.asyncio
    async def test_no_recipient_is_active(self, assembler, intelligence):
        intelligence.snapshots.clear()
        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).suppression
        assert ctx.suppression_state is SuppressionState.ACTIVE
        assert ctx.never_contact is False


class TestFreshnessContext:
    @pytest.mark.asyncio
    async def test_sources_and_windows(self, assembler, intelligence):
        intelligence.put(COMPANY_ID, make_snapshot(blog_fetched_at="2026-02-01T00:00:00+00:00", sitemap_fetched_at=None))

        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).freshness
        by_source = {s.source: s for s in ctx.sources}

        assert ctx.current_tier == 5
        assert by_source[DataSource.PEOPLE].freshness_window_days == 30
        assert by_source[DataSource.DOL].freshness_window_days == 45
        assert by_source[DataSource.BLOG].data_fetched_at.month == 2
        assert by_source[DataSource.SITEMAP].data_fetched_at is None

    @pytest.mark.asyncio
    async def test_no_snapshot_means_never_fetched(self, assembler, intelligence):
        intelligence.snapshots.clear()
        ctx = (await assembler.assemble(make_signal(), Channel.MG, now=NOW)).freshness
        assert all(s.data_fetched_at is None for s in ctx.sources)
