# lcs/core/engine/domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================================
# ENUMS
# ============================================================================

class LifecyclePhase(str, Enum):
    OUTREACH = "OUTREACH"
    SALES = "SALES"
    CLIENT = "CLIENT"


# 3-letter phase code embedded in every communication id
PHASE_CODES: dict[LifecyclePhase, str] = {
    LifecyclePhase.OUTREACH: "OUT",
    LifecyclePhase.SALES: "SAL",
    LifecyclePhase.CLIENT: "CLI",
}


class Channel(str, Enum):
    """Delivery channel code. One adapter per channel."""
    MG = "MG"  # Mailgun email
    HR = "HR"  # HeyReach LinkedIn
    SH = "SH"  # Internal sales handoff


class EventType(str, Enum):
    SIGNAL_RECEIVED = "SIGNAL_RECEIVED"
    INTELLIGENCE_COLLECTED = "INTELLIGENCE_COLLECTED"
    FRAME_MATCHED = "FRAME_MATCHED"
    ID_MINTED = "ID_MINTED"
    AUDIENCE_RESOLVED = "AUDIENCE_RESOLVED"
    ADAPTER_CALLED = "ADAPTER_CALLED"
    DELIVERY_SENT = "DELIVERY_SENT"
    DELIVERY_SUCCESS = "DELIVERY_SUCCESS"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    DELIVERY_BOUNCED = "DELIVERY_BOUNCED"
    DELIVERY_COMPLAINED = "DELIVERY_COMPLAINED"
    DELIVERY_UNSUBSCRIBED = "DELIVERY_UNSUBSCRIBED"
    OPENED = "OPENED"
    CLICKED = "CLICKED"
    ERROR_LOGGED = "ERROR_LOGGED"
    SIGNAL_DROPPED = "SIGNAL_DROPPED"
    COMPOSITION_BLOCKED = "COMPOSITION_BLOCKED"
    RECIPIENT_PARKED = "RECIPIENT_PARKED"
    RECIPIENT_THROTTLED = "RECIPIENT_THROTTLED"
    COMPANY_THROTTLED = "COMPANY_THROTTLED"
    DATA_STALE = "DATA_STALE"
    FRAME_INELIGIBLE = "FRAME_INELIGIBLE"


# Events that count as a send for capacity and throttle bookkeeping
SEND_EVENT_TYPES = (EventType.DELIVERY_SENT, EventType.DELIVERY_SUCCESS)


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    CLICKED = "CLICKED"
    REPLIED = "REPLIED"
    BOUNCED = "BOUNCED"
    FAILED = "FAILED"


class Lane(str, Enum):
    MAIN = "MAIN"
    LANE_A = "LANE_A"
    LANE_B = "LANE_B"
    NEWSLETTER = "NEWSLETTER"


class EntityType(str, Enum):
    SLOT = "slot"
    PERSON = "person"


class FailureType(str, Enum):
    ADAPTER_ERROR = "ADAPTER_ERROR"
    TIMEOUT = "TIMEOUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    BOUNCE_HARD = "BOUNCE_HARD"
    BOUNCE_SOFT = "BOUNCE_SOFT"
    COMPLAINT = "COMPLAINT"
    AUTH_FAILURE = "AUTH_FAILURE"
    PAYLOAD_REJECTED = "PAYLOAD_REJECTED"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    UNKNOWN = "UNKNOWN"


class OrbtAction(str, Enum):
    AUTO_RETRY = "AUTO_RETRY"
    ALT_CHANNEL = "ALT_CHANNEL"
    HUMAN_ESCALATION = "HUMAN_ESCALATION"


class AdapterHealth(str, Enum):
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    PAUSED = "PAUSED"
    WARMING = "WARMING"


class DataSource(str, Enum):
    """Intelligence sub-hubs whose freshness the freshness gate checks."""
    PEOPLE = "PEOPLE"
    DOL = "DOL"
    BLOG = "BLOG"
    SITEMAP = "SITEMAP"


class FrameType(str, Enum):
    HAMMER = "HAMMER"
    NEWSLETTER = "NEWSLETTER"
    POND = "POND"
    MEETING_FOLLOWUP = "MEETING_FOLLOWUP"
    EMPLOYEE_COMM = "EMPLOYEE_COMM"
    RENEWAL_NOTICE = "RENEWAL_NOTICE"
    ONBOARDING = "ONBOARDING"


class RunOutcome(str, Enum):
    """How a pipeline run ended, coarse enough for an operator dashboard."""
    DELIVERED = "DELIVERED"              # adapter accepted the message
    BLOCKED = "BLOCKED"                  # a gate said no
    REJECTED = "REJECTED"                # malformed input, no frame, no recipient
    DELIVERY_FAILED = "DELIVERY_FAILED"  # adapter raised or reported failure
    ERROR = "ERROR"                      # minter or lookup failure


MIN_TIER = 1  # richest intelligence
MAX_TIER = 5  # bare minimum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True)
class Signal:
    """
    Inbound trigger from an ingress spoke.

    Only ``sovereign_company_id``, ``signal_set_hash`` and ``lifecycle_phase``
    are required for intake; they are typed Optional so that a malformed
    signal can still reach Step 1 and be dropped with an audit row.
    """
    spoke_id: str
    signal_set_hash: Optional[str]
    signal_category: str
    sovereign_company_id: Optional[str]
    lifecycle_phase: Optional[LifecyclePhase]
    preferred_channel: Optional[Channel] = None
    preferred_lane: Optional[Lane] = None
    agent_number: Optional[str] = None
    signal_data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Accept raw codes from queue rows and JSON bodies
        for name, enum_cls in (
            ("lifecycle_phase", LifecyclePhase),
            ("preferred_channel", Channel),
            ("preferred_lane", Lane),
        ):
            value = getattr(self, name)
            if value and not isinstance(value, enum_cls):
                object.__setattr__(self, name, enum_cls(value))


@dataclass(frozen=True)
class Frame:
    """A template family from the frame registry."""
    frame_id: str
    frame_name: str
    lifecycle_phase: LifecyclePhase
    frame_type: FrameType
    tier: int
    required_fields: tuple[str, ...] = ()
    fallback_frame_id: Optional[str] = None
    channel: Optional[Channel] = None
    is_active: bool = True


@dataclass(frozen=True)
class Recipient:
    entity_type: EntityType
    entity_id: str
    email: Optional[str] = None
    linkedin_url: Optional[str] = None


@dataclass(frozen=True)
class AuditEvent:
    """
    One append-only row in the event log.

    Ids are None when the event is written before they were minted
    (intake failures, capacity/freshness blocks).
    """
    sovereign_company_id: Optional[str]
    signal_set_hash: Optional[str]
    lifecycle_phase: Optional[LifecyclePhase]
    event_type: EventType
    step_number: int
    step_name: str
    communication_id: Optional[str] = None
    message_run_id: Optional[str] = None
    entity_type: EntityType = EntityType.SLOT
    entity_id: Optional[str] = None
    frame_id: Optional[str] = None
    adapter_type: Optional[str] = None
    channel: Optional[Channel] = None
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    lane: Lane = Lane.MAIN
    agent_number: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    adapter_response: Optional[Dict[str, Any]] = None
    intelligence_tier: Optional[int] = None
    sender_identity: Optional[str] = None
    gate: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ErrorRecord:
    """One ORBT strike. Append-only."""
    message_run_id: Optional[str]
    communication_id: Optional[str]
    sovereign_company_id: Optional[str]
    failure_type: FailureType
    failure_message: str
    lifecycle_phase: Optional[LifecyclePhase]
    adapter_type: Optional[str]
    orbt_strike_number: int
    orbt_action_taken: OrbtAction
    orbt_alt_channel_eligible: bool
    orbt_alt_channel_reason: str
    created_at: datetime = field(default_factory=utcnow)
