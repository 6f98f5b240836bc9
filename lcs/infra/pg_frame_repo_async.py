# lcs/infra/pg_frame_repo_async.py
"""Async PostgreSQL frame registry (lcs_frame_registry)."""
from __future__ import annotations

import json
from typing import Optional

from lcs.core.engine.domain import Channel, Frame, FrameType, LifecyclePhase
from lcs.infra.db_resilience_async import retry_on_transient_error, safe_db_conn


def row_to_frame(row) -> Frame:
    required = row["required_fields"]
    if isinstance(required, str):
        required = json.loads(required)
    return Frame(
        frame_id=row["frame_id"],
        frame_name=row["frame_name"],
        lifecycle_phase=LifecyclePhase(row["lifecycle_phase"]),
        frame_type=FrameType(row["frame_type"]),
        tier=row["tier"],
        required_fields=tuple(required or ()),
        fallback_frame_id=row["fallback_frame"],
        channel=Channel(row["channel"]) if row["channel"] else None,
        is_active=row["is_active"],
    )


class AsyncPostgresFrameRepository:
    @retry_on_transient_error(max_retries=3)
    async def find_frame(self, phase: LifecyclePhase, tier: int) -> Optional[Frame]:
        """
        Richest active frame a company at ``tier`` can satisfy.

        Tier 1 is the richest intelligence, so a frame written for tier N
        is usable by any company at tier N or better.
        """
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM lcs_frame_registry
                WHERE lifecycle_phase = $1
                  AND tier >= $2
                  AND is_active
                ORDER BY tier, frame_id
                LIMIT 1
                """,
                LifecyclePhase(phase).value,
                tier,
            )
        return row_to_frame(row) if row else None

    @retry_on_transient_error(max_retries=3)
    async def get_frame(self, frame_id: str) -> Optional[Frame]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM lcs_frame_registry WHERE frame_id = $1 AND is_active",
                frame_id,
            )
        return row_to_frame(row) if row else None
