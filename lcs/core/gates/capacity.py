# lcs/core/gates/capacity.py
from __future__ import annotations

from lcs.core.engine.domain import AdapterHealth, EventType
from lcs.core.gates.types import CapacityContext, GateName, GateResult, blocked, passed

GATE = GateName.CAPACITY


def check_capacity(ctx: CapacityContext) -> GateResult:
    """
    Throughput limits, checked first-failure-wins:

    1. founder calendar unavailable (global kill switch)
    2. adapter paused
    3. adapter daily cap reached (None = unlimited)
    4. agent daily cap reached

    Every block drops the signal.
    """
    if not ctx.founder_calendar_available:
        return blocked(
            GATE,
            "Founder calendar unavailable, all sends paused",
            "FOUNDER_UNAVAILABLE",
            EventType.SIGNAL_DROPPED,
        )

    if AdapterHealth(ctx.adapter_health_status) is AdapterHealth.PAUSED:
        return blocked(
            GATE,
            f"Adapter paused (health_status={AdapterHealth.PAUSED.value})",
            "ADAPTER_PAUSED",
            EventType.SIGNAL_DROPPED,
        )

    if ctx.adapter_daily_cap is not None and ctx.adapter_sent_today >= ctx.adapter_daily_cap:
        return blocked(
            GATE,
            f"Adapter daily cap reached: {ctx.adapter_sent_today}/{ctx.adapter_daily_cap}",
            "ADAPTER_CAP_REACHED",
            EventType.SIGNAL_DROPPED,
        )

    if ctx.agent_sent_today >= ctx.agent_daily_cap:
        return blocked(
            GATE,
            f"Agent {ctx.agent_number} daily cap reached: {ctx.agent_sent_today}/{ctx.agent_daily_cap}",
            "AGENT_CAP_REACHED",
            EventType.SIGNAL_DROPPED,
        )

    return passed(GATE, "Capacity available")
