# lcs/core/pipeline/steps.py
"""
Pipeline steps 1-7.

Each step mutates the run's ``PipelineState`` and returns a
``StepResult`` naming the audit event to record.  Steps never raise for
expected business conditions; the orchestrator decides whether to go on.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Optional

from lcs.core.engine.adapters import AdapterPayload
from lcs.core.engine.domain import (
    DeliveryStatus,
    EntityType,
    EventType,
    FailureType,
    Frame,
    MAX_TIER,
    MIN_TIER,
    Recipient,
    RunOutcome,
)
from lcs.core.engine.errors import IdFormatError, UnknownChannelError
from lcs.core.engine.ids import CommunicationId, mint_communication_id, mint_message_run_id
from lcs.core.engine.ports import AsyncFrameRepository, AsyncIntelligenceRepository
from lcs.core.pipeline.types import PipelineState, StepResult

# Recipient slots in priority order
RECIPIENT_SLOTS = ("ceo", "cfo", "hr")

# Signal data keys passed through to adapters as content placeholders
CONTENT_KEYS = ("subject", "body_html", "body_text")


def pick_recipient(snapshot: Optional[dict[str, Any]]) -> Optional[Recipient]:
    """First slot (CEO, CFO, HR) with an entity id and any contact method."""
    if not snapshot:
        return None
    for slot in RECIPIENT_SLOTS:
        entity_id = snapshot.get(f"{slot}_entity_id")
        email = snapshot.get(f"{slot}_email") or None
        linkedin_url = snapshot.get(f"{slot}_linkedin_url") or None
        if entity_id and (email or linkedin_url):
            return Recipient(
                entity_type=EntityType.SLOT,
                entity_id=str(entity_id),
                email=email,
                linkedin_url=linkedin_url,
            )
    return None


def _clamp_tier(value: Any) -> int:
    try:
        tier = int(value)
    except (TypeError, ValueError):
        return MAX_TIER
    return min(max(tier, MIN_TIER), MAX_TIER)


async def signal_intake(state: PipelineState) -> StepResult:
    """Step 1: fail closed on a signal missing company, hash or phase."""
    sig = state.signal
    missing = [
        name for name, value in (
            ("sovereign_company_id", sig.sovereign_company_id),
            ("signal_set_hash", sig.signal_set_hash),
            ("lifecycle_phase", sig.lifecycle_phase),
        )
        if not value
    ]
    if missing:
        state.fail(1, f"Missing required signal fields: {', '.join(missing)}", RunOutcome.REJECTED)
        return StepResult(1, "Signal Intake", EventType.SIGNAL_DROPPED, False,
                          {"missing_fields": missing})

    return StepResult(1, "Signal Intake", EventType.SIGNAL_RECEIVED, True, {
        "spoke_id": sig.spoke_id,
        "signal_category": sig.signal_category,
        "signal_data": sig.signal_data,
    })


async def collect_intelligence(
    state: PipelineState,
    intelligence: AsyncIntelligenceRepository,
) -> StepResult:
    """Step 2: no snapshot degrades to the worst tier, a lookup error is fatal."""
    try:
        snapshot = await intelligence.get_snapshot(state.signal.sovereign_company_id)
    except Exception as exc:
        state.fail(2, f"Intelligence lookup failed: {exc}", RunOutcome.ERROR)
        return StepResult(2, "Collect Intelligence", EventType.DATA_STALE, False)

    if not snapshot:
        state.intelligence = None
        state.intelligence_tier = state.base_tier = MAX_TIER
        return StepResult(2, "Collect Intelligence", EventType.INTELLIGENCE_COLLECTED, True, {
            "intelligence_tier": MAX_TIER,
            "reason": "No intelligence found for company",
        })

    state.intelligence = dict(snapshot)
    state.intelligence_tier = state.base_tier = _clamp_tier(snapshot.get("intelligence_tier"))
    return StepResult(2, "Collect Intelligence", EventType.INTELLIGENCE_COLLECTED, True, {
        "intelligence_tier": state.intelligence_tier,
    })


def apply_frame(state: PipelineState, frame: Frame) -> None:
    state.frame_id = frame.frame_id
    state.frame_type = frame.frame_type
    state.frame_required_fields = tuple(frame.required_fields)
    state.frame_fallback_id = frame.fallback_frame_id


async def match_frame(state: PipelineState, frames: AsyncFrameRepository) -> StepResult:
    """Step 3: richest active frame the current tier can satisfy."""
    phase = state.signal.lifecycle_phase
    tier = state.intelligence_tier or MAX_TIER
    try:
        frame = await frames.find_frame(phase, tier)
    except Exception as exc:
        state.fail(3, f"Frame lookup failed: {exc}", RunOutcome.ERROR)
        return StepResult(3, "Match Frame", EventType.FRAME_INELIGIBLE, False)

    if frame is None:
        state.fail(
            3,
            f"No eligible frame for phase={phase.value}, tier={tier}",
            RunOutcome.REJECTED,
        )
        return StepResult(3, "Match Frame", EventType.FRAME_INELIGIBLE, False)

    apply_frame(state, frame)
    return StepResult(3, "Match Frame", EventType.FRAME_MATCHED, True, {
        "frame_id": frame.frame_id,
        "frame_type": frame.frame_type.value,
        "frame_tier": frame.tier,
    })


async def mint_ids(state: PipelineState, now: Optional[datetime] = None) -> StepResult:
    """Step 4: mint the communication id, or adopt the one an ORBT retry carries."""
    try:
        if state.communication_id:
            state.communication_id = CommunicationId(state.communication_id)
            reused = True
        else:
            state.communication_id = mint_communication_id(state.signal.lifecycle_phase, now=now)
            reused = False
    except IdFormatError as exc:
        state.communication_id = None
        state.fail(4, str(exc), RunOutcome.ERROR)
        return StepResult(4, "Mint IDs", EventType.ERROR_LOGGED, False)

    return StepResult(4, "Mint IDs", EventType.ID_MINTED, True, {
        "communication_id": state.communication_id,
        "reused": reused,
    })


async def resolve_audience(
    state: PipelineState,
    *,
    sender_email: Optional[str] = None,
    sender_domain: Optional[str] = None,
) -> StepResult:
    """Step 5: recipient by slot priority, sender identity by phase."""
    recipient = pick_recipient(state.intelligence)
    if recipient is None:
        state.fail(5, "No valid recipient found in intelligence snapshot", RunOutcome.REJECTED)
        return StepResult(5, "Resolve Audience", EventType.COMPOSITION_BLOCKED, False)

    state.entity_type = recipient.entity_type
    state.entity_id = recipient.entity_id
    state.recipient_email = recipient.email
    state.recipient_linkedin_url = recipient.linkedin_url
    state.sender_identity = f"{state.signal.lifecycle_phase.value.lower()}-sender"
    state.sender_email = sender_email
    state.sender_domain = sender_domain

    return StepResult(5, "Resolve Audience", EventType.AUDIENCE_RESOLVED, True, {
        "entity_id": recipient.entity_id,
        "entity_type": recipient.entity_type.value,
        "recipient_email": recipient.email,
        "recipient_linkedin_url": recipient.linkedin_url,
    })


async def call_adapter(state: PipelineState, adapters) -> tuple[StepResult, Optional[FailureType]]:
    """
    Step 6: mint the message run id and hand the payload to the adapter.

    ``adapters`` is anything with ``resolve(channel) -> Adapter``.  A failed
    response still counts as an executed step; an exception from the send
    fails it and is returned with a failure type for ORBT.  A bad run id or
    an unregistered channel is a defect, not a delivery failure: the step
    fails with outcome ERROR and no failure type.
    """
    try:
        state.message_run_id = mint_message_run_id(
            state.communication_id, state.channel, state.attempt
        )
        adapter = adapters.resolve(state.channel)
    except (IdFormatError, UnknownChannelError) as exc:
        state.fail(6, str(exc), RunOutcome.ERROR)
        return StepResult(6, "Call Adapter", EventType.ERROR_LOGGED, False), None
    state.adapter_type = adapter.channel.value

    try:
        content = {k: state.signal.signal_data.get(k) for k in CONTENT_KEYS}
        payload = AdapterPayload(
            message_run_id=state.message_run_id,
            communication_id=state.communication_id,
            channel=state.channel,
            sender_identity=state.sender_identity,
            recipient_email=state.recipient_email,
            recipient_linkedin_url=state.recipient_linkedin_url,
            sender_email=state.sender_email,
            sender_domain=state.sender_domain,
            metadata={
                "frame_id": state.frame_id,
                "signal_set_hash": state.signal.signal_set_hash,
                "sovereign_company_id": state.signal.sovereign_company_id,
            },
            **content,
        )
        response = await adapter.send(payload)
    except asyncio.TimeoutError:
        state.fail(6, "Adapter call timed out", RunOutcome.DELIVERY_FAILED)
        return StepResult(6, "Call Adapter", EventType.DELIVERY_FAILED, False), FailureType.TIMEOUT
    except Exception as exc:
        state.fail(6, f"Adapter call failed: {exc}", RunOutcome.DELIVERY_FAILED)
        return StepResult(6, "Call Adapter", EventType.DELIVERY_FAILED, False), FailureType.ADAPTER_ERROR

    state.adapter_response = response
    state.delivery_status = response.delivery_status
    return StepResult(6, "Call Adapter", EventType.ADAPTER_CALLED, True, {
        "adapter_success": response.success,
        "adapter_message_id": response.adapter_message_id,
        "adapter_response": response.raw_response,
    }), None


async def log_delivery(state: PipelineState) -> StepResult:
    """Step 7: translate the adapter response into the terminal event type."""
    response = state.adapter_response
    if response is None:
        state.fail(7, "No adapter response available", RunOutcome.ERROR)
        return StepResult(7, "Log Delivery", EventType.DELIVERY_FAILED, False)

    if response.success:
        event_type = (
            EventType.DELIVERY_SUCCESS
            if response.delivery_status is DeliveryStatus.DELIVERED
            else EventType.DELIVERY_SENT
        )
    elif response.delivery_status is DeliveryStatus.BOUNCED:
        event_type = EventType.DELIVERY_BOUNCED
    else:
        event_type = EventType.DELIVERY_FAILED

    return StepResult(7, "Log Delivery", event_type, True, {
        "delivery_status": response.delivery_status.value,
        "adapter_message_id": response.adapter_message_id,
        "error_message": response.error_message,
        "raw_response": response.raw_response,
    })
