# lcs/transport/schemas.py
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from lcs.core.engine.domain import Signal


class SignalIn(BaseModel):
    """Body of POST /signals.

    Company, hash and phase are optional here on purpose: a signal
    missing them is still audited (and dropped) by Step 1.
    """
    spoke_id: str = Field(min_length=1, max_length=128)
    signal_set_hash: Optional[str] = Field(default=None, max_length=256)
    signal_category: str = Field(default="", max_length=128)
    sovereign_company_id: Optional[str] = Field(default=None, max_length=128)
    lifecycle_phase: Optional[Literal["OUTREACH", "SALES", "CLIENT"]] = None
    preferred_channel: Optional[Literal["MG", "HR", "SH"]] = None
    preferred_lane: Optional[Literal["MAIN", "LANE_A", "LANE_B", "NEWSLETTER"]] = None
    agent_number: Optional[str] = Field(default=None, max_length=64)
    signal_data: dict[str, Any] = Field(default_factory=dict)

    # Run in the background via the signal queue instead of inline
    enqueue: bool = False

    def to_signal(self) -> Signal:
        return Signal(**self.model_dump(exclude={"enqueue"}))


class MailgunSignature(BaseModel):
    timestamp: str
    token: str
    signature: str


class MailgunWebhookIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signature: MailgunSignature
    event_data: dict[str, Any] = Field(alias="event-data")


class SignalQueuedOut(BaseModel):
    queued: bool = True
    queue_id: str
