# lcs/core/gates/suppression.py
"""
Recipient protection.

Permanent conditions (hard flags, SUPPRESSED) are checked before any
frequency math: a suppressed recipient's last-contact date must never
be what lets a send through.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from lcs.core.engine.domain import EventType
from lcs.core.gates.types import (
    GateName,
    GateResult,
    SuppressionContext,
    SuppressionState,
    blocked,
    passed,
)

GATE = GateName.SUPPRESSION

# (flag attribute, code, reason) in check order
_HARD_FLAGS = (
    ("never_contact", "NEVER_CONTACT", "Recipient flagged never_contact (permanent suppression)"),
    ("unsubscribed", "UNSUBSCRIBED", "Recipient unsubscribed (CAN-SPAM)"),
    ("hard_bounced", "HARD_BOUNCED", "Recipient hard bounced, address permanently undeliverable"),
    ("complained", "COMPLAINED", "Recipient filed a spam complaint (permanent suppression)"),
)


def days_between(earlier: datetime, later: datetime) -> float:
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=timezone.utc)
    if later.tzinfo is None:
        later = later.replace(tzinfo=timezone.utc)
    return (later - earlier).total_seconds() / 86400


def check_suppression(ctx: SuppressionContext, *, now: Optional[datetime] = None) -> GateResult:
    for attr, code, reason in _HARD_FLAGS:
        if getattr(ctx, attr):
            return blocked(GATE, reason, code, EventType.COMPOSITION_BLOCKED)

    state = SuppressionState(ctx.suppression_state)
    if state is SuppressionState.SUPPRESSED:
        return blocked(
            GATE, "Recipient in SUPPRESSED state", "SUPPRESSED", EventType.COMPOSITION_BLOCKED
        )
    if state is SuppressionState.PARKED:
        return blocked(
            GATE,
            "Recipient in PARKED state, temporarily removed from outreach",
            "PARKED",
            EventType.RECIPIENT_PARKED,
        )
    if state is SuppressionState.COOLED:
        return blocked(
            GATE,
            "Recipient in COOLED state, waiting out the cooldown interval",
            "COOLED",
            EventType.RECIPIENT_THROTTLED,
        )

    if ctx.last_contact_at is not None:
        days_since = days_between(ctx.last_contact_at, now or datetime.now(timezone.utc))
        if days_since < ctx.min_contact_interval_days:
            return blocked(
                GATE,
                f"Recipient contacted {days_since:.1f} days ago, "
                f"minimum interval is {ctx.min_contact_interval_days} days",
                "CONTACT_INTERVAL",
                EventType.RECIPIENT_THROTTLED,
            )

    if ctx.company_sends_this_week >= ctx.company_weekly_cap:
        return blocked(
            GATE,
            f"Company weekly cap reached: {ctx.company_sends_this_week}/{ctx.company_weekly_cap}",
            "COMPANY_WEEKLY_CAP",
            EventType.COMPANY_THROTTLED,
        )

    return passed(GATE, "Recipient active, within frequency limits, company under cap")
