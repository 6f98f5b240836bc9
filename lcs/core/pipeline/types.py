# lcs/core/pipeline/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TYPE_CHECKING

from lcs.core.engine.adapters import AdapterResponse
from lcs.core.engine.domain import (
    Channel,
    DeliveryStatus,
    EntityType,
    EventType,
    FrameType,
    Lane,
    RunOutcome,
    Signal,
)
from lcs.core.gates.types import GateResult

if TYPE_CHECKING:
    from lcs.core.engine.orbt import OrbtDecision


@dataclass
class PipelineState:
    """
    Mutable accumulator for one pipeline run.

    Owned by a single orchestrator run and discarded when it ends; the
    event log is the only thing that outlives it.
    """
    signal: Signal
    agent_number: str
    lane: Lane
    attempt: int = 1

    # Step 2
    intelligence: Optional[Dict[str, Any]] = None
    intelligence_tier: Optional[int] = None
    base_tier: Optional[int] = None  # tier before any freshness downgrade

    # Step 3
    frame_id: Optional[str] = None
    frame_type: Optional[FrameType] = None
    frame_required_fields: tuple[str, ...] = ()
    frame_fallback_id: Optional[str] = None

    # Step 4
    communication_id: Optional[str] = None

    # Step 5
    entity_type: Optional[EntityType] = None
    entity_id: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_linkedin_url: Optional[str] = None
    sender_identity: Optional[str] = None
    sender_email: Optional[str] = None
    sender_domain: Optional[str] = None

    # Step 6
    message_run_id: Optional[str] = None
    channel: Optional[Channel] = None
    adapter_type: Optional[str] = None

    # Step 7
    adapter_response: Optional[AdapterResponse] = None
    delivery_status: Optional[DeliveryStatus] = None

    gate_results: list[GateResult] = field(default_factory=list)

    failed: bool = False
    failure_step: Optional[int] = None
    failure_reason: Optional[str] = None
    outcome: Optional[RunOutcome] = None

    def fail(self, step: int, reason: str, outcome: RunOutcome) -> None:
        self.failed = True
        self.failure_step = step
        self.failure_reason = reason
        self.outcome = outcome


@dataclass(frozen=True)
class StepResult:
    step_number: int
    step_name: str
    event_type: EventType
    success: bool
    payload: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class PipelineResult:
    """What the caller gets back: enough to tell a policy block from a failed delivery."""
    success: bool
    outcome: RunOutcome
    communication_id: Optional[str]
    message_run_id: Optional[str]
    delivery_status: Optional[DeliveryStatus]
    steps_completed: int
    gate_results: tuple[GateResult, ...]
    failure_reason: Optional[str]
    channel: Optional[Channel] = None
    orbt: Optional["OrbtDecision"] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "outcome": self.outcome.value,
            "communication_id": self.communication_id,
            "message_run_id": self.message_run_id,
            "delivery_status": self.delivery_status.value if self.delivery_status else None,
            "steps_completed": self.steps_completed,
            "gate_results": [g.to_dict() for g in self.gate_results],
            "failure_reason": self.failure_reason,
            "channel": self.channel.value if self.channel else None,
            "orbt": self.orbt.to_dict() if self.orbt else None,
        }
