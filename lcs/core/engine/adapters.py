# lcs/core/engine/adapters.py
"""
Delivery adapter contract.

One concrete adapter exists per channel (see ``lcs.transport``).  The
orchestrator only ever calls ``send(payload)`` and reads the normalized
response, so it never needs channel-specific knowledge.

Adapters validate their own required fields and return a failed
``AdapterResponse`` instead of raising.  An exception escaping ``send``
is treated by the pipeline as a Step 6 failure.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Optional

from lcs.core.engine.domain import Channel, DeliveryStatus, FailureType


@dataclass(frozen=True)
class AdapterPayload:
    """Everything an adapter needs to deliver one attempt."""
    message_run_id: str
    communication_id: str
    channel: Channel
    sender_identity: str
    recipient_email: Optional[str] = None
    recipient_linkedin_url: Optional[str] = None
    # Content placeholders, populated by frame templates
    subject: Optional[str] = None
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    sender_email: Optional[str] = None
    sender_domain: Optional[str] = None
    # Opaque pass-through (frame_id, signal_set_hash, ...)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AdapterResponse:
    success: bool
    delivery_status: DeliveryStatus
    adapter_message_id: Optional[str] = None
    # Provider response, kept for the audit payload only
    raw_response: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    failure_type: Optional[FailureType] = None

    @classmethod
    def failed(
        cls,
        error_message: str,
        failure_type: FailureType = FailureType.ADAPTER_ERROR,
        *,
        delivery_status: DeliveryStatus = DeliveryStatus.FAILED,
        raw_response: Optional[dict[str, Any]] = None,
    ) -> "AdapterResponse":
        return cls(
            success=False,
            delivery_status=delivery_status,
            raw_response=raw_response,
            error_message=error_message,
            failure_type=failure_type,
        )


class Adapter(abc.ABC):
    """Abstract base class for delivery adapters"""

    @property
    @abc.abstractmethod
    def channel(self) -> Channel:
        """Channel code this adapter delivers on"""

    @abc.abstractmethod
    async def send(self, payload: AdapterPayload) -> AdapterResponse:
        """
        Deliver one attempt.

        Returns:
            Normalized response; never raises for provider-side failures
        """

    def is_configured(self) -> bool:
        """Check if credentials required by the provider are present"""
        return True
