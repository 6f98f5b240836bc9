# lcs/infra/pg_event_log_async.py
"""
Async PostgreSQL event log (asyncpg).

Append-only: there is no UPDATE or DELETE path on lcs_event.  A failed
append propagates to the orchestrator; a run that cannot be audited is
not allowed to continue.
"""
from __future__ import annotations

import json
from typing import Any, Optional

from lcs.core.engine.domain import (
    AuditEvent,
    Channel,
    DeliveryStatus,
    EntityType,
    EventType,
    Lane,
    LifecyclePhase,
)
from lcs.infra.db_resilience_async import retry_on_transient_error, safe_db_conn
from lcs.infra.logging_config import get_logger
from lcs.infra.metrics import inc_counter

logger = get_logger(__name__)

INSERT_EVENT_SQL = """
INSERT INTO lcs_event (
    communication_id, message_run_id, sovereign_company_id, entity_type, entity_id,
    signal_set_hash, frame_id, adapter_type, channel, delivery_status,
    lifecycle_phase, event_type, lane, agent_number, step_number, step_name,
    gate, payload, adapter_response, intelligence_tier, sender_identity, created_at
) VALUES (
    $1, $2, $3, $4, $5,
    $6, $7, $8, $9, $10,
    $11, $12, $13, $14, $15, $16,
    $17, $18::jsonb, $19::jsonb, $20, $21, $22
)
"""


def _enum_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


def _dump_json(value: Optional[dict[str, Any]]) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _load_json(value: Any) -> Optional[dict[str, Any]]:
    if isinstance(value, str):
        return json.loads(value)
    return value


def event_to_params(event: AuditEvent) -> tuple:
    """Positional parameters for INSERT_EVENT_SQL."""
    return (
        event.communication_id,
        event.message_run_id,
        event.sovereign_company_id,
        _enum_value(event.entity_type),
        event.entity_id,
        event.signal_set_hash,
        event.frame_id,
        event.adapter_type,
        _enum_value(event.channel),
        _enum_value(event.delivery_status),
        _enum_value(event.lifecycle_phase),
        _enum_value(event.event_type),
        _enum_value(event.lane),
        event.agent_number,
        event.step_number,
        event.step_name,
        event.gate,
        _dump_json(event.payload),
        _dump_json(event.adapter_response),
        event.intelligence_tier,
        event.sender_identity,
        event.created_at,
    )


def row_to_event(row) -> AuditEvent:
    """Convert an asyncpg Record from lcs_event to an AuditEvent."""
    return AuditEvent(
        sovereign_company_id=row["sovereign_company_id"],
        signal_set_hash=row["signal_set_hash"],
        lifecycle_phase=LifecyclePhase(row["lifecycle_phase"]) if row["lifecycle_phase"] else None,
        event_type=EventType(row["event_type"]),
        step_number=row["step_number"],
        step_name=row["step_name"],
        communication_id=row["communication_id"],
        message_run_id=row["message_run_id"],
        entity_type=EntityType(row["entity_type"]),
        entity_id=row["entity_id"],
        frame_id=row["frame_id"],
        adapter_type=row["adapter_type"],
        channel=Channel(row["channel"]) if row["channel"] else None,
        delivery_status=DeliveryStatus(row["delivery_status"]),
        lane=Lane(row["lane"]),
        agent_number=row["agent_number"],
        payload=_load_json(row["payload"]),
        adapter_response=_load_json(row["adapter_response"]),
        intelligence_tier=row["intelligence_tier"],
        sender_identity=row["sender_identity"],
        gate=row["gate"],
        created_at=row["created_at"],
    )


class AsyncPostgresEventLog:
    """AsyncEventLog backed by the lcs_event table."""

    @retry_on_transient_error(max_retries=3)
    async def append(self, event: AuditEvent) -> None:
        async with safe_db_conn() as conn:
            await conn.execute(INSERT_EVENT_SQL, *event_to_params(event))
        inc_counter("lcs_events_written_total", event_type=event.event_type.value)

    @retry_on_transient_error(max_retries=3)
    async def list_for_communication(self, communication_id: str) -> list[AuditEvent]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                "SELECT * FROM lcs_event WHERE communication_id = $1 ORDER BY id",
                communication_id,
            )
        return [row_to_event(row) for row in rows]
