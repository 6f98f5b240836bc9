# lcs/infra/pg_intelligence_repo_async.py
"""
Read-only view of lcs_company_intelligence.

The table is maintained by the intelligence hubs; this service only
flattens the latest row into the snapshot dict the pipeline reads.
"""
from __future__ import annotations

import json
from typing import Any, Optional

from lcs.infra.db_resilience_async import retry_on_transient_error, safe_db_conn

_FETCHED_AT_COLUMNS = (
    "people_fetched_at",
    "dol_fetched_at",
    "blog_fetched_at",
    "sitemap_fetched_at",
)


def row_to_snapshot(row) -> dict[str, Any]:
    snapshot = row["snapshot"]
    if isinstance(snapshot, str):
        snapshot = json.loads(snapshot)
    result: dict[str, Any] = dict(snapshot or {})
    # Typed columns win over whatever the jsonb blob carries
    result["sovereign_company_id"] = row["sovereign_company_id"]
    result["intelligence_tier"] = row["intelligence_tier"]
    for column in _FETCHED_AT_COLUMNS:
        result[column] = row[column]
    return result


class AsyncPostgresIntelligenceRepository:
    @retry_on_transient_error(max_retries=3)
    async def get_snapshot(self, sovereign_company_id: str) -> Optional[dict[str, Any]]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM lcs_company_intelligence WHERE sovereign_company_id = $1",
                sovereign_company_id,
            )
        return row_to_snapshot(row) if row else None
