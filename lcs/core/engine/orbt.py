# lcs/core/engine/orbt.py
"""
ORBT -- three-strike delivery failure escalation.

    strike 1 -> AUTO_RETRY        (same channel, next attempt)
    strike 2 -> ALT_CHANNEL       (the channel's alternate, if it has one)
    strike 3+ -> HUMAN_ESCALATION

The strike number is the count of prior error records for the
communication id plus one, capped at 3.  The handler writes exactly one
error record per failure and never retries anything itself; the
returned ``OrbtDecision`` tells the caller (the signal worker) what the
next pipeline invocation should look like.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from lcs.core.engine.domain import (
    Channel,
    ErrorRecord,
    FailureType,
    LifecyclePhase,
    OrbtAction,
)
from lcs.core.engine.ids import MAX_ATTEMPT
from lcs.core.engine.ports import AsyncErrorLog
from lcs.infra.logging_config import get_logger
from lcs.infra.metrics import AppMetrics

logger = get_logger(__name__)

MAX_STRIKES = 3

# Fixed business rule: email and LinkedIn back each other up, handoff has no alternate
DEFAULT_ALTERNATES: Mapping[Channel, Optional[Channel]] = {
    Channel.MG: Channel.HR,
    Channel.HR: Channel.MG,
    Channel.SH: None,
}

_ACTIONS = {
    1: OrbtAction.AUTO_RETRY,
    2: OrbtAction.ALT_CHANNEL,
    3: OrbtAction.HUMAN_ESCALATION,
}


@dataclass(frozen=True)
class OrbtDecision:
    strike_number: int
    action: OrbtAction
    alt_channel_eligible: bool
    alt_channel_reason: str
    # Where the next attempt should go; None means no automatic attempt
    next_channel: Optional[Channel] = None
    next_attempt: Optional[int] = None

    @property
    def should_requeue(self) -> bool:
        return self.next_channel is not None and self.next_attempt is not None

    def to_dict(self) -> dict:
        return {
            "strike_number": self.strike_number,
            "action": self.action.value,
            "alt_channel_eligible": self.alt_channel_eligible,
            "alt_channel_reason": self.alt_channel_reason,
            "next_channel": self.next_channel.value if self.next_channel else None,
            "next_attempt": self.next_attempt,
        }


def action_for_strike(strike_number: int) -> OrbtAction:
    return _ACTIONS[min(max(strike_number, 1), MAX_STRIKES)]


class OrbtHandler:
    def __init__(
        self,
        error_log: AsyncErrorLog,
        alternates: Mapping[Channel, Optional[Channel]] = DEFAULT_ALTERNATES,
    ) -> None:
        self.error_log = error_log
        self.alternates = dict(alternates)

    def alternate_for(self, channel: Optional[Channel]) -> tuple[Optional[Channel], str]:
        if channel is None:
            return None, "No channel resolved"
        alt = self.alternates.get(Channel(channel))
        if alt is None:
            return None, f"{Channel(channel).value} has no alternate channel"
        return alt, f"{Channel(channel).value} -> {alt.value}"

    async def next_strike(self, communication_id: Optional[str]) -> int:
        if not communication_id:
            return 1
        prior = await self.error_log.count_strikes(communication_id)
        return min(prior + 1, MAX_STRIKES)

    async def handle(
        self,
        *,
        communication_id: Optional[str],
        message_run_id: Optional[str],
        sovereign_company_id: Optional[str],
        lifecycle_phase: Optional[LifecyclePhase],
        channel: Optional[Channel],
        adapter_type: Optional[str],
        attempt: int,
        failure_message: str,
        failure_type: FailureType = FailureType.ADAPTER_ERROR,
    ) -> OrbtDecision:
        """Record one strike and decide the remediation."""
        strike = await self.next_strike(communication_id)
        action = action_for_strike(strike)
        alt, alt_reason = self.alternate_for(channel)

        next_channel: Optional[Channel] = None
        if action is OrbtAction.AUTO_RETRY:
            next_channel = Channel(channel) if channel else None
        elif action is OrbtAction.ALT_CHANNEL:
            if alt is None:
                # Strike 2 with nowhere to go is a human problem
                action = OrbtAction.HUMAN_ESCALATION
            else:
                next_channel = alt

        next_attempt: Optional[int] = None
        if next_channel is not None and communication_id and attempt < MAX_ATTEMPT:
            next_attempt = attempt + 1
        else:
            next_channel = None

        record = ErrorRecord(
            message_run_id=message_run_id,
            communication_id=communication_id,
            sovereign_company_id=sovereign_company_id,
            failure_type=failure_type,
            failure_message=failure_message,
            lifecycle_phase=lifecycle_phase,
            adapter_type=adapter_type,
            orbt_strike_number=strike,
            orbt_action_taken=action,
            orbt_alt_channel_eligible=alt is not None,
            orbt_alt_channel_reason=alt_reason,
        )
        await self.error_log.append(record)
        AppMetrics.orbt_strike(strike, action.value)

        logger.warning(
            "ORBT strike %d for %s: %s (%s)",
            strike, communication_id or "-", action.value, failure_message,
            extra={"communication_id": communication_id, "message_run_id": message_run_id},
        )

        return OrbtDecision(
            strike_number=strike,
            action=action,
            alt_channel_eligible=alt is not None,
            alt_channel_reason=alt_reason,
            next_channel=next_channel,
            next_attempt=next_attempt,
        )
