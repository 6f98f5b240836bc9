# lcs/core/gates/types.py
"""
Gate contexts and results.

Contexts are plain values assembled before a run starts (see
``lcs.infra.context_assembler``); gates never query storage themselves.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from lcs.core.engine.domain import (
    AdapterHealth,
    Channel,
    DataSource,
    EventType,
    LifecyclePhase,
    MAX_TIER,
)


class GateVerdict(str, Enum):
    PASS = "PASS"
    BLOCK = "BLOCK"
    DOWNGRADE = "DOWNGRADE"


class GateName(str, Enum):
    CAPACITY = "CAPACITY"
    SUPPRESSION = "SUPPRESSION"
    FRESHNESS = "FRESHNESS"


class SuppressionState(str, Enum):
    ACTIVE = "ACTIVE"          # eligible for contact
    COOLED = "COOLED"          # recently contacted, waiting out the cooldown
    PARKED = "PARKED"          # temporarily withheld
    SUPPRESSED = "SUPPRESSED"  # permanently blocked


@dataclass(frozen=True)
class GateResult:
    gate: GateName
    verdict: GateVerdict
    reason: str
    # Machine-readable reason, e.g. "ADAPTER_PAUSED", "HARD_BOUNCED"
    code: str
    blocked_event_type: Optional[EventType] = None
    downgraded_tier: Optional[int] = None

    @property
    def blocked(self) -> bool:
        return self.verdict is GateVerdict.BLOCK

    def to_dict(self) -> dict:
        return {
            "gate": self.gate.value,
            "verdict": self.verdict.value,
            "reason": self.reason,
            "code": self.code,
            "blocked_event_type": self.blocked_event_type.value if self.blocked_event_type else None,
            "downgraded_tier": self.downgraded_tier,
        }


def passed(gate: GateName, reason: str, code: str = "OK") -> GateResult:
    return GateResult(gate=gate, verdict=GateVerdict.PASS, reason=reason, code=code)


def blocked(gate: GateName, reason: str, code: str, event_type: EventType) -> GateResult:
    return GateResult(
        gate=gate,
        verdict=GateVerdict.BLOCK,
        reason=reason,
        code=code,
        blocked_event_type=event_type,
    )


@dataclass(frozen=True)
class CapacityContext:
    founder_calendar_available: bool
    agent_number: str
    agent_daily_cap: int
    agent_sent_today: int
    adapter_daily_cap: Optional[int]  # None = unlimited
    adapter_sent_today: int
    adapter_health_status: AdapterHealth = AdapterHealth.HEALTHY


@dataclass(frozen=True)
class SuppressionContext:
    suppression_state: SuppressionState
    last_contact_at: Optional[datetime]
    min_contact_interval_days: int
    company_sends_this_week: int
    company_weekly_cap: int
    never_contact: bool = False
    unsubscribed: bool = False
    hard_bounced: bool = False
    complained: bool = False
    lifecycle_phase: Optional[LifecyclePhase] = None
    channel: Optional[Channel] = None


@dataclass(frozen=True)
class SourceFreshness:
    source: DataSource
    data_fetched_at: Optional[datetime]  # None = never fetched
    freshness_window_days: int


@dataclass(frozen=True)
class FreshnessContext:
    current_tier: int
    sources: tuple[SourceFreshness, ...]
    frame_required_fields: tuple[str, ...] = ()
    frame_fallback_id: Optional[str] = None


@dataclass(frozen=True)
class GateContexts:
    """The three contexts a pipeline run needs, assembled up front.

    ``freshness`` carries source freshness only; the orchestrator fills in
    the tier and frame fields as the run progresses.
    """
    capacity: CapacityContext
    suppression: SuppressionContext
    freshness: FreshnessContext = field(
        default_factory=lambda: FreshnessContext(current_tier=MAX_TIER, sources=())
    )
