# tests/test_gates.py
"""Tests for the capacity, suppression and freshness gates"""
from dataclasses import replace
from datetime import timedelta

import pytest

from lcs.core.engine.domain import AdapterHealth, EventType
from lcs.core.gates import check_capacity, check_freshness, check_suppression
from lcs.core.gates.types import FreshnessContext, GateVerdict, SuppressionState

from conftest import NOW, fresh_sources, make_contexts


# ============================================================================
# Capacity
# ============================================================================

class TestCapacityGate:
    def _ctx(self, **overrides):
        return make_contexts(capacity=overrides).capacity

    def test_passes_with_headroom(self):
        result = check_capacity(self._ctx())
        assert result.verdict is GateVerdict.PASS
        assert not result.blocked

    def test_founder_unavailable_blocks_everything(self):
        result = check_capacity(self._ctx(founder_calendar_available=False))
        assert result.blocked
        assert result.code == "FOUNDER_UNAVAILABLE"
        assert result.blocked_event_type is EventType.SIGNAL_DROPPED

    def test_paused_adapter_blocks(self):
        result = check_capacity(self._ctx(adapter_health_status=AdapterHealth.PAUSED))
        assert result.code == "ADAPTER_PAUSED"

    def test_degraded_adapter_still_sends(self):
        result = check_capacity(self._ctx(adapter_health_status=AdapterHealth.DEGRADED))
        assert result.verdict is GateVerdict.PASS

    def test_adapter_cap_reached(self):
        result = check_capacity(self._ctx(adapter_daily_cap=100, adapter_sent_today=100))
        assert result.code == "ADAPTER_CAP_REACHED"
        assert "100/100" in result.reason

    def test_unlimited_adapter_cap(self):
        result = check_capacity(self._ctx(adapter_daily_cap=None, adapter_sent_today=10_000))
        assert result.verdict is GateVerdict.PASS

    def test_agent_cap_reached(self):
        result = check_capacity(self._ctx(agent_daily_cap=5, agent_sent_today=5))
        assert result.code == "AGENT_CAP_REACHED"

    def test_first_failure_wins(self):
        result = check_capacity(self._ctx(
            founder_calendar_available=False,
            adapter_health_status=AdapterHealth.PAUSED,
            agent_daily_cap=0,
        ))
        assert result.code == "FOUNDER_UNAVAILABLE"

    def test_to_dict(self):
        data = check_capacity(self._ctx(agent_daily_cap=0)).to_dict()
        assert data["gate"] == "CAPACITY"
        assert data["verdict"] == "BLOCK"
        assert data["blocked_event_type"] == "SIGNAL_DROPPED"


# ============================================================================
# Suppression
# ============================================================================

class TestSuppressionGate:
    def _ctx(self, **overrides):
        return make_contexts(suppression=overrides).suppression

    def test_active_recipient_passes(self):
        assert check_suppression(self._ctx(), now=NOW).verdict is GateVerdict.PASS

    @pytest.mark.parametrize("flag,code", [
        ("never_contact", "NEVER_CONTACT"),
        ("unsubscribed", "UNSUBSCRIBED"),
        ("hard_bounced", "HARD_BOUNCED"),
        ("complained", "COMPLAINED"),
    ])
    def test_hard_flags_block(self, flag, code):
        result = check_suppression(self._ctx(**{flag: True}), now=NOW)
        assert result.code == code
        assert result.blocked_event_type is EventType.COMPOSITION_BLOCKED

    def test_hard_flag_beats_old_contact_date(self):
        result = check_suppression(
            self._ctx(unsubscribed=True, last_contact_at=NOW - timedelta(days=365)),
            now=NOW,
        )
        assert result.code == "UNSUBSCRIBED"

    @pytest.mark.parametrize("state,code,event_type", [
        (SuppressionState.SUPPRESSED, "SUPPRESSED", EventType.COMPOSITION_BLOCKED),
        (SuppressionState.PARKED, "PARKED", EventType.RECIPIENT_PARKED),
        (SuppressionState.COOLED, "COOLED", EventType.RECIPIENT_THROTTLED),
    ])
    def test_states(self, state, code, event_type):
        result = check_suppression(self._ctx(suppression_state=state), now=NOW)
        assert result.code == code
        assert result.blocked_event_type is event_type

    def test_contact_interval(self):
        result = check_suppression(self._ctx(last_contact_at=NOW - timedelta(days=3)), now=NOW)
        assert result.code == "CONTACT_INTERVAL"
        assert result.blocked_event_type is EventType.RECIPIENT_THROTTLED

    def test_contact_interval_elapsed(self):
        result = check_suppression(self._ctx(last_contact_at=NOW - timedelta(days=14)), now=NOW)
        assert result.verdict is GateVerdict.PASS

    def test_naive_last_contact_treated_as_utc(self):
        naive = (NOW - timedelta(days=2)).replace(tzinfo=None)
        assert check_suppression(self._ctx(last_contact_at=naive), now=NOW).code == "CONTACT_INTERVAL"

    def test_company_weekly_cap(self):
        result = check_suppression(self._ctx(company_sends_this_week=3), now=NOW)
        assert result.code == "COMPANY_WEEKLY_CAP"
        assert result.blocked_event_type is EventType.COMPANY_THROTTLED


# ============================================================================
# Freshness
# ============================================================================

class TestFreshnessGate:
    def _ctx(self, tier=2, required=(), fallback=None, **stale_days):
        return FreshnessContext(
            current_tier=tier,
            sources=fresh_sources(**stale_days),
            frame_required_fields=tuple(required),
            frame_fallback_id=fallback,
        )

    def test_all_fresh_passes(self):
        assert check_freshness(self._ctx(), now=NOW).verdict is GateVerdict.PASS

    def test_stale_people_blocks(self):
        result = check_freshness(self._ctx(PEOPLE=31), now=NOW)
        assert result.code == "PEOPLE_STALE"
        assert result.blocked_event_type is EventType.DATA_STALE

    def test_never_fetched_is_stale(self):
        ctx = self._ctx()
        sources = tuple(
            replace(s, data_fetched_at=None) if s.source.value == "BLOG" else s
            for s in ctx.sources
        )
        result = check_freshness(replace(ctx, sources=sources), now=NOW)
        assert result.verdict is GateVerdict.DOWNGRADE
        assert result.downgraded_tier == 3

    def test_one_tier_per_stale_source(self):
        result = check_freshness(self._ctx(tier=1, DOL=91, BLOG=61), now=NOW)
        assert result.verdict is GateVerdict.DOWNGRADE
        assert result.code == "DOWNGRADED"
        assert result.downgraded_tier == 3

    def test_downgrade_capped_at_worst_tier(self):
        result = check_freshness(self._ctx(tier=4, DOL=91, BLOG=61, SITEMAP=61), now=NOW)
        assert result.downgraded_tier == 5

    def test_already_worst_tier_passes(self):
        result = check_freshness(self._ctx(tier=5, DOL=91), now=NOW)
        assert result.verdict is GateVerdict.PASS
        assert result.code == "ALREADY_WORST_TIER"

    def test_required_fields_with_fallback(self):
        result = check_freshness(self._ctx(required=("renewal_date",), fallback="OUT-POND-T4", DOL=91), now=NOW)
        assert result.code == "DOWNGRADED_TO_FALLBACK"
        assert "OUT-POND-T4" in result.reason

    def test_required_fields_without_fallback_blocks(self):
        result = check_freshness(self._ctx(required=("renewal_date",), DOL=91), now=NOW)
        assert result.code == "FRAME_UNSATISFIABLE"
        assert result.blocked_event_type is EventType.FRAME_INELIGIBLE
