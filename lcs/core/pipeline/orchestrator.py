# lcs/core/pipeline/orchestrator.py
"""
Pipeline orchestrator -- the hub.

    Step 1 intake
      [CAPACITY]
    Step 2 collect intelligence
      [FRESHNESS]
    Step 3 match frame          (+ FRESHNESS re-check if the first check downgraded)
    Step 4 mint communication id
      [SUPPRESSION]
    Step 5 resolve audience
    Step 6 mint message run id + call adapter
    Step 7 log delivery
      -> ORBT on delivery failure

State only flows forward.  Exactly one audit event is written per
executed step and per gate BLOCK, before the run continues or halts.
Any BLOCK or failed step ends the run; the result reports how far it got.
"""
from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Awaitable, Optional, TypeVar

from lcs.core.engine.domain import (
    AuditEvent,
    Channel,
    DeliveryStatus,
    FailureType,
    Lane,
    RunOutcome,
    Signal,
)
from lcs.core.engine.orbt import OrbtDecision, OrbtHandler
from lcs.core.engine.ports import AsyncEventLog, AsyncFrameRepository, AsyncIntelligenceRepository
from lcs.core.gates import check_capacity, check_freshness, check_suppression
from lcs.core.gates.types import GateContexts, GateResult, GateVerdict
from lcs.core.pipeline import steps
from lcs.core.pipeline.types import PipelineResult, PipelineState, StepResult
from lcs.infra.audit_log import audit_event
from lcs.infra.logging_config import LogContext, get_logger
from lcs.infra.metrics import AppMetrics

logger = get_logger(__name__)

DEFAULT_AGENT = "UNASSIGNED"

T = TypeVar("T")


class PipelineOrchestrator:
    def __init__(
        self,
        *,
        event_log: AsyncEventLog,
        intelligence: AsyncIntelligenceRepository,
        frames: AsyncFrameRepository,
        adapters,
        orbt: OrbtHandler,
        default_channel: Channel = Channel.MG,
        default_agent: str = DEFAULT_AGENT,
        sender_email: Optional[str] = None,
        sender_domain: Optional[str] = None,
    ) -> None:
        self.event_log = event_log
        self.intelligence = intelligence
        self.frames = frames
        self.adapters = adapters
        self.orbt = orbt
        self.default_channel = Channel(default_channel)
        self.default_agent = default_agent
        self.sender_email = sender_email
        self.sender_domain = sender_domain

    async def run(
        self,
        signal: Signal,
        contexts: GateContexts,
        *,
        attempt: int = 1,
        communication_id: Optional[str] = None,
        channel: Optional[Channel] = None,
        now: Optional[datetime] = None,
    ) -> PipelineResult:
        """
        Run one signal through the pipeline.

        Args:
            signal: Inbound signal
            contexts: Gate contexts assembled before the run
            attempt: Delivery attempt number for the message run id (1-999)
            communication_id: Existing id when this run is an ORBT retry
            channel: Channel override (ORBT alternate channel)
            now: Clock override for the time-based gates and the communication id date
        """
        state = PipelineState(
            signal=signal,
            agent_number=signal.agent_number or self.default_agent,
            lane=Lane(signal.preferred_lane) if signal.preferred_lane else Lane.MAIN,
            attempt=attempt,
            communication_id=communication_id,
            channel=Channel(channel or signal.preferred_channel or self.default_channel),
        )
        log = LogContext(
            logger,
            communication_id=communication_id,
            company_id=signal.sovereign_company_id,
            signal_hash=signal.signal_set_hash,
        )

        result = await self._run(state, contexts, log, now)

        AppMetrics.pipeline_finished(result.outcome.value, result.steps_completed)
        log.info(
            "Pipeline finished: outcome=%s steps=%d reason=%s",
            result.outcome.value, result.steps_completed, result.failure_reason or "-",
        )
        return result

    async def _run(
        self,
        state: PipelineState,
        contexts: GateContexts,
        log: LogContext,
        now: Optional[datetime],
    ) -> PipelineResult:
        # Step 1
        step1 = await self._timed(1, steps.signal_intake(state))
        await self._log_step(step1, state)
        if not step1.success:
            log.warning("Signal dropped at intake: %s", state.failure_reason)
            return self._result(state, 1)
        AppMetrics.signal_received(state.signal.lifecycle_phase.value)

        # Gate: capacity
        capacity = check_capacity(contexts.capacity)
        if await self._gate_blocked(state, capacity):
            return self._result(state, 1)

        # Step 2
        step2 = await self._timed(2, steps.collect_intelligence(state, self.intelligence))
        await self._log_step(step2, state)
        if not step2.success:
            return self._result(state, 2)

        # Gate: freshness, frame not known yet
        freshness_ctx = dataclasses.replace(
            contexts.freshness,
            current_tier=state.intelligence_tier,
            frame_required_fields=(),
            frame_fallback_id=None,
        )
        freshness = check_freshness(freshness_ctx, now=now)
        if await self._gate_blocked(state, freshness):
            return self._result(state, 2)
        if freshness.verdict is GateVerdict.DOWNGRADE:
            state.intelligence_tier = freshness.downgraded_tier

        # Step 3, with the post-frame freshness re-check folded in so that
        # the step's audit row names the frame the run actually uses
        step3 = await self._timed(3, steps.match_frame(state, self.frames))
        recheck: Optional[GateResult] = None
        if step3.success and freshness.verdict is GateVerdict.DOWNGRADE:
            recheck = check_freshness(
                dataclasses.replace(
                    freshness_ctx,
                    current_tier=state.base_tier,
                    frame_required_fields=state.frame_required_fields,
                    frame_fallback_id=state.frame_fallback_id,
                ),
                now=now,
            )
            if (
                recheck.verdict is GateVerdict.DOWNGRADE
                and state.frame_required_fields
                and state.frame_fallback_id
            ):
                step3 = await self._reroute_to_fallback(state, step3, log)

        await self._log_step(step3, state)
        if not step3.success:
            return self._result(state, 3)
        if recheck is not None and await self._gate_blocked(state, recheck):
            return self._result(state, 3)

        # Step 4
        step4 = await self._timed(4, steps.mint_ids(state, now))
        await self._log_step(step4, state)
        if not step4.success:
            log.error("Communication id mint failed: %s", state.failure_reason)
            return self._result(state, 4)
        log.bind(communication_id=state.communication_id)

        # Gate: suppression
        suppression = check_suppression(contexts.suppression, now=now)
        if await self._gate_blocked(state, suppression):
            return self._result(state, 4)

        # Step 5
        step5 = await self._timed(5, steps.resolve_audience(
            state, sender_email=self.sender_email, sender_domain=self.sender_domain
        ))
        await self._log_step(step5, state)
        if not step5.success:
            return self._result(state, 5)

        # Step 6
        with AppMetrics.track_adapter_call(state.channel.value):
            step6, failure_type = await self._timed(6, steps.call_adapter(state, self.adapters))
        log.bind(message_run_id=state.message_run_id)
        await self._log_step(step6, state)
        if not step6.success and failure_type is None:
            log.error("Message run aborted before send: %s", state.failure_reason)
            return self._result(state, 6)
        if not step6.success:
            log.error("Adapter call failed: %s", state.failure_reason)
            decision = await self._handle_failure(state, failure_type or FailureType.ADAPTER_ERROR)
            return self._result(state, 6, decision)

        # Step 7
        step7 = await self._timed(7, steps.log_delivery(state))
        await self._log_step(step7, state)
        if not step7.success:
            return self._result(state, 7)

        response = state.adapter_response
        AppMetrics.delivery(state.channel.value, response.delivery_status.value)
        if not response.success:
            state.fail(
                7,
                response.error_message or f"Delivery {response.delivery_status.value}",
                RunOutcome.DELIVERY_FAILED,
            )
            log.warning("Delivery failed: %s", state.failure_reason)
            decision = await self._handle_failure(
                state, response.failure_type or FailureType.ADAPTER_ERROR
            )
            return self._result(state, 7, decision)

        state.outcome = RunOutcome.DELIVERED
        return self._result(state, 7)

    @staticmethod
    async def _timed(step_number: int, step: Awaitable[T]) -> T:
        with AppMetrics.track_step(step_number):
            return await step

    async def _reroute_to_fallback(
        self, state: PipelineState, step3: StepResult, log: LogContext
    ) -> StepResult:
        matched_id = state.frame_id
        fallback = await self.frames.get_frame(state.frame_fallback_id)
        if fallback is None or not fallback.is_active:
            log.warning("Fallback frame %s unavailable, keeping %s", state.frame_fallback_id, matched_id)
            return step3

        steps.apply_frame(state, fallback)
        log.info("Frame %s re-routed to fallback %s after tier downgrade", matched_id, fallback.frame_id)
        return dataclasses.replace(step3, payload={
            **(step3.payload or {}),
            "frame_id": fallback.frame_id,
            "frame_type": fallback.frame_type.value,
            "frame_tier": fallback.tier,
            "rerouted_from": matched_id,
        })

    async def _gate_blocked(self, state: PipelineState, gate: GateResult) -> bool:
        """Record the verdict; on BLOCK, fail the run and write the block event."""
        state.gate_results.append(gate)
        AppMetrics.gate_verdict(gate.gate.value, gate.verdict.value)
        if not gate.blocked:
            return False

        state.fail(0, gate.reason, RunOutcome.BLOCKED)
        await self._append(self._event(
            state,
            event_type=gate.blocked_event_type,
            step_number=0,
            step_name="Gate Block",
            payload={"gate_reason": gate.reason, "gate_code": gate.code},
            delivery_status=DeliveryStatus.FAILED,
            gate=gate.gate.value,
        ))
        return True

    async def _log_step(self, step: StepResult, state: PipelineState) -> None:
        await self._append(self._event(
            state,
            event_type=step.event_type,
            step_number=step.step_number,
            step_name=step.step_name,
            payload=step.payload,
            delivery_status=state.delivery_status or DeliveryStatus.PENDING,
        ))

    def _event(self, state: PipelineState, **fields) -> AuditEvent:
        sig = state.signal
        response = state.adapter_response
        return AuditEvent(
            sovereign_company_id=sig.sovereign_company_id,
            signal_set_hash=sig.signal_set_hash,
            lifecycle_phase=sig.lifecycle_phase,
            communication_id=state.communication_id,
            message_run_id=state.message_run_id,
            entity_id=state.entity_id,
            frame_id=state.frame_id,
            adapter_type=state.adapter_type,
            channel=state.channel,
            lane=state.lane,
            agent_number=state.agent_number,
            adapter_response=response.raw_response if response else None,
            intelligence_tier=state.intelligence_tier,
            sender_identity=state.sender_identity,
            **fields,
        )

    async def _append(self, event: AuditEvent) -> None:
        await self.event_log.append(event)
        audit_event(
            f"event.{event.event_type.value}",
            communication_id=event.communication_id,
            message_run_id=event.message_run_id,
            company_id=event.sovereign_company_id,
            detail=f"step={event.step_number} {event.step_name}",
        )

    async def _handle_failure(self, state: PipelineState, failure_type: FailureType) -> OrbtDecision:
        response = state.adapter_response
        return await self.orbt.handle(
            communication_id=state.communication_id,
            message_run_id=state.message_run_id,
            sovereign_company_id=state.signal.sovereign_company_id,
            lifecycle_phase=state.signal.lifecycle_phase,
            channel=state.channel,
            adapter_type=state.adapter_type,
            attempt=state.attempt,
            failure_message=(
                state.failure_reason
                or (response.error_message if response else None)
                or "Unknown failure"
            ),
            failure_type=failure_type,
        )

    @staticmethod
    def _result(
        state: PipelineState,
        steps_completed: int,
        orbt: Optional[OrbtDecision] = None,
    ) -> PipelineResult:
        return PipelineResult(
            success=not state.failed,
            outcome=state.outcome or (RunOutcome.ERROR if state.failed else RunOutcome.DELIVERED),
            communication_id=state.communication_id,
            message_run_id=state.message_run_id,
            delivery_status=state.delivery_status,
            steps_completed=steps_completed,
            gate_results=tuple(state.gate_results),
            failure_reason=state.failure_reason,
            channel=state.channel,
            orbt=orbt,
        )
