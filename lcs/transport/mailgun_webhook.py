# lcs/transport/mailgun_webhook.py
"""
Mailgun delivery feedback (step 8).

Mailgun posts one event per request:

    {"signature": {"timestamp": "...", "token": "...", "signature": "..."},
     "event-data": {"event": "delivered", "user-variables": {...}, ...}}

The ``communication_id`` and ``message_run_id`` user variables set by the
Mailgun adapter tie the event back to its run; company and recipient
context is copied from the audit trail of that communication.
"""
from __future__ import annotations

import hashlib
import hmac
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from lcs.core.engine.domain import AuditEvent, Channel, DeliveryStatus, EventType
from lcs.core.engine.ports import AsyncEventLog
from lcs.infra.audit_log import audit_event
from lcs.infra.logging_config import get_logger, mask_email
from lcs.infra.metrics import AppMetrics

logger = get_logger(__name__)

PROVIDER = "mailgun"

# Signatures older than this are treated as replays
SIGNATURE_MAX_AGE_SECONDS = 900

WEBHOOK_STEP_NUMBER = 8
WEBHOOK_STEP_NAME = "Webhook Feedback"

EVENT_MAP: dict[str, tuple[EventType, DeliveryStatus]] = {
    "delivered": (EventType.DELIVERY_SUCCESS, DeliveryStatus.DELIVERED),
    "bounced": (EventType.DELIVERY_BOUNCED, DeliveryStatus.BOUNCED),
    "failed": (EventType.DELIVERY_FAILED, DeliveryStatus.FAILED),
    "complained": (EventType.DELIVERY_COMPLAINED, DeliveryStatus.FAILED),
    "unsubscribed": (EventType.DELIVERY_UNSUBSCRIBED, DeliveryStatus.FAILED),
    "opened": (EventType.OPENED, DeliveryStatus.OPENED),
    "clicked": (EventType.CLICKED, DeliveryStatus.CLICKED),
}


@dataclass
class WebhookResult:
    processed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"processed": self.processed, "skipped": self.skipped, "errors": self.errors}


def compute_signature(signing_key: str, timestamp: str, token: str) -> str:
    return hmac.new(
        signing_key.encode(),
        f"{timestamp}{token}".encode(),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(
    signing_key: str | None,
    timestamp: str,
    token: str,
    signature: str,
    *,
    now: float | None = None,
    max_age_seconds: int = SIGNATURE_MAX_AGE_SECONDS,
) -> tuple[bool, str | None]:
    """
    HMAC-SHA256 over ``timestamp + token`` with the webhook signing key.

    Returns:
        (is_valid, error_message)
    """
    if not signing_key:
        return False, "Webhook signing key not configured"

    try:
        sent_at = int(timestamp)
    except (TypeError, ValueError):
        return False, "Invalid timestamp format"

    age = abs(int(now if now is not None else time.time()) - sent_at)
    if age > max_age_seconds:
        return False, f"Signature expired (age: {age}s, max: {max_age_seconds}s)"

    expected = compute_signature(signing_key, timestamp, token)
    if not hmac.compare_digest(signature.encode(), expected.encode()):
        return False, "Invalid signature"

    return True, None


def map_event(event_data: dict[str, Any]) -> Optional[tuple[EventType, DeliveryStatus]]:
    """Audit event type and status for a Mailgun event, None if not tracked."""
    name = event_data.get("event")
    mapping = EVENT_MAP.get(name)
    # Mailgun reports hard bounces as failed/permanent
    if name == "failed" and event_data.get("severity") == "permanent":
        return EventType.DELIVERY_BOUNCED, DeliveryStatus.BOUNCED
    return mapping


def _context_event(events: list[AuditEvent]) -> AuditEvent:
    """First event of the run that knows its recipient, else the very first."""
    for event in events:
        if event.entity_id:
            return event
    return events[0]


def _message_id(event_data: dict[str, Any]) -> Optional[str]:
    headers = (event_data.get("message") or {}).get("headers") or {}
    return headers.get("message-id") or event_data.get("message-id")


async def process_event(event_log: AsyncEventLog, event_data: dict[str, Any], result: WebhookResult) -> None:
    """Append one feedback event, or record why it was skipped."""
    name = event_data.get("event", "unknown")
    mapping = map_event(event_data)
    if mapping is None:
        result.skipped += 1
        return
    event_type, delivery_status = mapping

    user_vars = event_data.get("user-variables") or {}
    communication_id = user_vars.get("communication_id")
    message_run_id = user_vars.get("message_run_id")
    recipient = event_data.get("recipient")

    if not communication_id or not message_run_id:
        result.errors.append(
            f"Missing LCS ids in webhook event: {name} for {mask_email(recipient) if recipient else 'unknown'}"
        )
        return

    history = await event_log.list_for_communication(communication_id)
    if not history:
        result.errors.append(f"No audit events found for communication_id: {communication_id}")
        return

    origin = _context_event(history)
    event = AuditEvent(
        sovereign_company_id=origin.sovereign_company_id,
        signal_set_hash=origin.signal_set_hash,
        lifecycle_phase=origin.lifecycle_phase,
        event_type=event_type,
        step_number=WEBHOOK_STEP_NUMBER,
        step_name=WEBHOOK_STEP_NAME,
        communication_id=communication_id,
        message_run_id=message_run_id,
        entity_type=origin.entity_type,
        entity_id=origin.entity_id,
        frame_id=origin.frame_id,
        adapter_type=Channel.MG.value,
        channel=Channel.MG,
        delivery_status=delivery_status,
        lane=origin.lane,
        agent_number=origin.agent_number,
        payload={
            "mailgun_event": name,
            "mailgun_timestamp": event_data.get("timestamp"),
            "mailgun_message_id": _message_id(event_data),
            "recipient": recipient,
            "severity": event_data.get("severity"),
            "reason": event_data.get("reason"),
        },
        intelligence_tier=origin.intelligence_tier,
        sender_identity=origin.sender_identity,
    )
    await event_log.append(event)
    audit_event(
        f"webhook.{name}",
        communication_id=communication_id,
        message_run_id=message_run_id,
        company_id=origin.sovereign_company_id,
        detail=event_type.value,
    )
    AppMetrics.webhook_event(PROVIDER, name)
    result.processed += 1

    if event_type in (EventType.DELIVERY_COMPLAINED, EventType.DELIVERY_UNSUBSCRIBED):
        logger.info(
            f"Suppression feedback: {name} for {mask_email(recipient) if recipient else 'unknown'}",
            extra={"communication_id": communication_id, "company_id": origin.sovereign_company_id},
        )


async def handle_mailgun_events(event_log: AsyncEventLog, events: list[dict[str, Any]]) -> WebhookResult:
    """Process a batch of Mailgun ``event-data`` objects; one bad event never stops the rest."""
    result = WebhookResult()
    for event_data in events:
        try:
            await process_event(event_log, event_data, result)
        except Exception as exc:
            logger.error(f"Webhook event processing failed: {exc}", exc_info=True)
            result.errors.append(f"{exc.__class__.__name__}: {exc}")
    return result
