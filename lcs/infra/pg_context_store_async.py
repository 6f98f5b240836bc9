# lcs/infra/pg_context_store_async.py
"""
Read model over lcs_event and lcs_adapter_registry.

Everything the gates need to know about history is a projection of the
event log; gate blocks (rows with ``gate`` set) never count as contact.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from lcs.core.engine.domain import (
    AdapterHealth,
    AuditEvent,
    Channel,
    SEND_EVENT_TYPES,
)
from lcs.core.engine.ports import AdapterStatus
from lcs.infra.db_resilience_async import retry_on_transient_error, safe_db_conn
from lcs.infra.pg_event_log_async import row_to_event

_SEND_TYPES = [event_type.value for event_type in SEND_EVENT_TYPES]


class AsyncPostgresContextStore:
    @retry_on_transient_error(max_retries=3)
    async def count_sends(
        self,
        *,
        since: datetime,
        agent_number: str | None = None,
        channel: Channel | None = None,
        sovereign_company_id: str | None = None,
    ) -> int:
        conditions = ["event_type = ANY($1::text[])", "created_at >= $2"]
        params: list[Any] = [_SEND_TYPES, since]
        idx = 3

        if agent_number:
            conditions.append(f"agent_number = ${idx}")
            params.append(agent_number)
            idx += 1

        if channel:
            conditions.append(f"channel = ${idx}")
            params.append(Channel(channel).value)
            idx += 1

        if sovereign_company_id:
            conditions.append(f"sovereign_company_id = ${idx}")
            params.append(sovereign_company_id)
            idx += 1

        async with safe_db_conn() as conn:
            count = await conn.fetchval(
                f"SELECT count(*)::int FROM lcs_event WHERE {' AND '.join(conditions)}",
                *params,
            )
        return count or 0

    @retry_on_transient_error(max_retries=3)
    async def last_contact_at(self, entity_id: str) -> Optional[datetime]:
        async with safe_db_conn() as conn:
            return await conn.fetchval(
                """
                SELECT max(created_at) FROM lcs_event
                WHERE entity_id = $1 AND event_type = ANY($2::text[])
                """,
                entity_id,
                _SEND_TYPES,
            )

    @retry_on_transient_error(max_retries=3)
    async def latest_entity_event(self, entity_id: str) -> Optional[AuditEvent]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM lcs_event
                WHERE entity_id = $1 AND gate IS NULL
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                entity_id,
            )
        return row_to_event(row) if row else None

    @retry_on_transient_error(max_retries=3)
    async def entity_event_types(self, entity_id: str) -> set[str]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                "SELECT DISTINCT event_type FROM lcs_event WHERE entity_id = $1 AND gate IS NULL",
                entity_id,
            )
        return {row["event_type"] for row in rows}

    @retry_on_transient_error(max_retries=3)
    async def get_adapter_status(self, channel: Channel) -> Optional[AdapterStatus]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                """
                SELECT channel, health_status, daily_cap FROM lcs_adapter_registry
                WHERE channel = $1 AND is_active
                """,
                Channel(channel).value,
            )
        if row is None:
            return None
        return AdapterStatus(
            channel=Channel(row["channel"]),
            health_status=AdapterHealth(row["health_status"]),
            daily_cap=row["daily_cap"],
        )
