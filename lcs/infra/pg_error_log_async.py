# lcs/infra/pg_error_log_async.py
"""Async PostgreSQL ORBT error log (lcs_err0). Append-only."""
from __future__ import annotations

from lcs.core.engine.domain import ErrorRecord
from lcs.infra.db_resilience_async import retry_on_transient_error, safe_db_conn
from lcs.infra.logging_config import get_logger

logger = get_logger(__name__)


class AsyncPostgresErrorLog:
    @retry_on_transient_error(max_retries=3)
    async def append(self, record: ErrorRecord) -> None:
        async with safe_db_conn() as conn:
            await conn.execute(
                """
                INSERT INTO lcs_err0 (
                    message_run_id, communication_id, sovereign_company_id,
                    failure_type, failure_message, lifecycle_phase, adapter_type,
                    orbt_strike_number, orbt_action_taken,
                    orbt_alt_channel_eligible, orbt_alt_channel_reason, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                """,
                record.message_run_id,
                record.communication_id,
                record.sovereign_company_id,
                record.failure_type.value,
                record.failure_message[:2000],  # Truncate long provider errors
                record.lifecycle_phase.value if record.lifecycle_phase else None,
                record.adapter_type,
                record.orbt_strike_number,
                record.orbt_action_taken.value,
                record.orbt_alt_channel_eligible,
                record.orbt_alt_channel_reason,
                record.created_at,
            )

    @retry_on_transient_error(max_retries=3)
    async def count_strikes(self, communication_id: str) -> int:
        async with safe_db_conn() as conn:
            count = await conn.fetchval(
                "SELECT count(*)::int FROM lcs_err0 WHERE communication_id = $1",
                communication_id,
            )
        return count or 0
