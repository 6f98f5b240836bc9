# lcs/infra/pg_signal_queue_async.py
"""
Async PostgreSQL signal queue (asyncpg).

DB-backed queue of signals waiting for a pipeline run, with
claim/finish semantics.  Uses FOR UPDATE SKIP LOCKED so several worker
processes can poll the same table.
"""
from __future__ import annotations

import json
from typing import Any, Optional

from lcs.core.engine.domain import Channel, Signal
from lcs.core.engine.ports import QueuedSignal, QueueStatus
from lcs.infra.db_resilience_async import retry_on_transient_error, safe_db_conn
from lcs.infra.logging_config import get_logger
from lcs.infra.metrics import inc_counter

logger = get_logger(__name__)


def _row_to_queued(row) -> QueuedSignal:
    """Convert an asyncpg Record to a QueuedSignal."""
    data = row["signal_data"]
    if isinstance(data, str):
        data = json.loads(data)
    signal = Signal(
        spoke_id=row["spoke_id"],
        signal_set_hash=row["signal_set_hash"],
        signal_category=row["signal_category"],
        sovereign_company_id=row["sovereign_company_id"],
        lifecycle_phase=row["lifecycle_phase"],
        preferred_channel=row["preferred_channel"],
        preferred_lane=row["preferred_lane"],
        agent_number=row["agent_number"],
        signal_data=data or {},
    )
    return QueuedSignal(
        id=str(row["id"]),
        signal=signal,
        attempt=row["attempt"],
        communication_id=row["communication_id"],
        channel_override=Channel(row["channel_override"]) if row["channel_override"] else None,
        status=QueueStatus(row["status"]),
        scheduled_at=row["scheduled_at"],
        created_at=row["created_at"],
    )


def _code(value: Any) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


class AsyncPostgresSignalQueue:
    """lcs_signal_queue with claim/finish semantics."""

    @retry_on_transient_error(max_retries=3)
    async def enqueue(
        self,
        signal: Signal,
        *,
        attempt: int = 1,
        communication_id: Optional[str] = None,
        channel: Optional[Channel] = None,
        delay_seconds: float = 0,
    ) -> str:
        """
        Insert a pending signal.

        Args:
            signal: The signal to run through the pipeline
            attempt: Attempt number for the run (ORBT retries pass > 1)
            communication_id: Existing communication the attempt continues
            channel: Channel override for the attempt
            delay_seconds: Delay before the row becomes claimable

        Returns:
            Queue row id (string)
        """
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO lcs_signal_queue (
                    spoke_id, signal_set_hash, signal_category, sovereign_company_id,
                    lifecycle_phase, preferred_channel, preferred_lane, agent_number,
                    signal_data, communication_id, attempt, channel_override, scheduled_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10, $11, $12,
                        now() + make_interval(secs => $13))
                RETURNING id
                """,
                signal.spoke_id,
                signal.signal_set_hash,
                signal.signal_category,
                signal.sovereign_company_id,
                _code(signal.lifecycle_phase),
                _code(signal.preferred_channel),
                _code(signal.preferred_lane),
                signal.agent_number,
                json.dumps(signal.signal_data, default=str),
                communication_id,
                attempt,
                _code(channel),
                float(delay_seconds),
            )
        queue_id = str(row["id"])
        logger.debug(
            f"Signal enqueued: id={queue_id}, company={signal.sovereign_company_id}, attempt={attempt}",
            extra={"company_id": signal.sovereign_company_id, "communication_id": communication_id},
        )
        inc_counter("lcs_signals_enqueued_total", retry=str(attempt > 1).lower())
        return queue_id

    @retry_on_transient_error(max_retries=3)
    async def claim_batch(self, batch_size: int = 10) -> list[QueuedSignal]:
        """Atomically claim up to batch_size due signals (status -> PROCESSING)."""
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                """
                WITH claimed AS (
                    SELECT id FROM lcs_signal_queue
                    WHERE status = 'PENDING'
                      AND scheduled_at <= now()
                    ORDER BY scheduled_at, id
                    LIMIT $1
                    FOR UPDATE SKIP LOCKED
                )
                UPDATE lcs_signal_queue
                SET status = 'PROCESSING', started_at = now()
                WHERE id IN (SELECT id FROM claimed)
                RETURNING *
                """,
                batch_size,
            )
        return [_row_to_queued(row) for row in rows]

    @retry_on_transient_error(max_retries=3)
    async def finish(
        self,
        queue_id: str,
        status: QueueStatus,
        *,
        outcome: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        async with safe_db_conn() as conn:
            await conn.execute(
                """
                UPDATE lcs_signal_queue
                SET status = $2, outcome = $3, error_message = $4, processed_at = now()
                WHERE id = $1
                """,
                int(queue_id),
                QueueStatus(status).value,
                outcome,
                error_message[:2000] if error_message else None,
            )

    @retry_on_transient_error(max_retries=3)
    async def reset_stale_processing(self, timeout_seconds: int = 300) -> int:
        """
        Safety net: put signals stuck in PROCESSING back to PENDING.

        Handles crashes where a signal was claimed but never finished.
        """
        async with safe_db_conn() as conn:
            result = await conn.execute(
                """
                UPDATE lcs_signal_queue
                SET status = 'PENDING', scheduled_at = now()
                WHERE status = 'PROCESSING'
                  AND started_at < now() - make_interval(secs => $1)
                """,
                float(timeout_seconds),
            )
        count = int(result.split()[-1]) if result else 0
        if count > 0:
            logger.warning(f"Reset {count} stale signals (stuck > {timeout_seconds}s)")
            inc_counter("lcs_signals_stale_reset_total")
        return count

    @retry_on_transient_error(max_retries=3)
    async def count_by_status(self) -> dict[str, int]:
        """Return {status: count} for the readiness probe."""
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                "SELECT status, count(*)::int AS cnt FROM lcs_signal_queue GROUP BY status",
            )
        return {row["status"]: row["cnt"] for row in rows}
