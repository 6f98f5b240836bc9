# lcs/core/gates/freshness.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from lcs.core.engine.domain import DataSource, EventType, MAX_TIER
from lcs.core.gates.suppression import days_between
from lcs.core.gates.types import (
    FreshnessContext,
    GateName,
    GateResult,
    GateVerdict,
    SourceFreshness,
    blocked,
    passed,
)

GATE = GateName.FRESHNESS


def is_stale(source: SourceFreshness, now: datetime) -> bool:
    """Never fetched, or older than its window."""
    if source.data_fetched_at is None:
        return True
    return days_between(source.data_fetched_at, now) > source.freshness_window_days


def check_freshness(ctx: FreshnessContext, *, now: Optional[datetime] = None) -> GateResult:
    """
    Data freshness check.

    - stale PEOPLE data blocks unconditionally
    - every other stale source costs one tier, capped at the worst tier
    - a downgrade is accepted when the frame needs no fields or has a
      fallback; otherwise the frame can't be satisfied and the run blocks

    Called once after intelligence collection with no frame fields, and
    again after frame matching when the first call downgraded.
    """
    now = now or datetime.now(timezone.utc)
    stale = [s.source for s in ctx.sources if is_stale(s, now)]

    if DataSource.PEOPLE in stale:
        return blocked(
            GATE,
            "People data is stale, no contact without fresh contact data",
            "PEOPLE_STALE",
            EventType.DATA_STALE,
        )

    if not stale:
        return passed(GATE, "All source data is fresh")

    names = ", ".join(DataSource(s).value for s in stale)
    new_tier = min(ctx.current_tier + len(stale), MAX_TIER)

    if new_tier == ctx.current_tier:
        return passed(
            GATE,
            f"Sources stale ({names}) but already at tier {ctx.current_tier}, no further downgrade",
            "ALREADY_WORST_TIER",
        )

    summary = f"Stale sources: {names}. Tier downgraded {ctx.current_tier} -> {new_tier}."

    if not ctx.frame_required_fields:
        return GateResult(
            gate=GATE,
            verdict=GateVerdict.DOWNGRADE,
            reason=f"{summary} Frame has no required fields.",
            code="DOWNGRADED",
            downgraded_tier=new_tier,
        )

    if ctx.frame_fallback_id is not None:
        return GateResult(
            gate=GATE,
            verdict=GateVerdict.DOWNGRADE,
            reason=f"{summary} Fallback frame available: {ctx.frame_fallback_id}",
            code="DOWNGRADED_TO_FALLBACK",
            downgraded_tier=new_tier,
        )

    return blocked(
        GATE,
        f"{summary} Frame requires ({', '.join(ctx.frame_required_fields)}) with no fallback.",
        "FRAME_UNSATISFIABLE",
        EventType.FRAME_INELIGIBLE,
    )
