# lcs/transport/sales_handoff_adapter.py
"""
Internal sales handoff adapter (channel SH).

No external call: the handoff record returned here is written to the
event log by Step 6/7, and that row is what the sales team works from.
"""
from __future__ import annotations

from datetime import datetime, timezone

from lcs.core.engine.adapters import Adapter, AdapterPayload, AdapterResponse
from lcs.core.engine.domain import Channel, DeliveryStatus


class SalesHandoffAdapter(Adapter):
    @property
    def channel(self) -> Channel:
        return Channel.SH

    async def send(self, payload: AdapterPayload) -> AdapterResponse:
        record = {
            "communication_id": payload.communication_id,
            "message_run_id": payload.message_run_id,
            "sender_identity": payload.sender_identity,
            "recipient_email": payload.recipient_email,
            "recipient_linkedin_url": payload.recipient_linkedin_url,
            "handoff_reason": payload.metadata.get("signal_set_hash") or "UNKNOWN",
            "frame_id": payload.metadata.get("frame_id") or "UNKNOWN",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        return AdapterResponse(
            success=True,
            delivery_status=DeliveryStatus.DELIVERED,
            adapter_message_id=f"SH-{payload.communication_id}",
            raw_response=record,
        )
