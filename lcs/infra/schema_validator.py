# lcs/infra/schema_validator.py
"""
Schema version check at startup.

The service never migrates on its own; it refuses to start when the
latest applied migration is not the one this build expects.
"""
from __future__ import annotations
from lcs.config import settings
from lcs.infra.db_async import db_conn
from lcs.infra.logging_config import get_logger

logger = get_logger(__name__)

_MIGRATE_HINT = "Run migrations first: python -m lcs.infra.migrate"


async def _applied_versions(conn) -> list[dict] | None:
    """Applied migrations oldest first, or None if the tracking table is missing."""
    table = await conn.fetchval("SELECT to_regclass('schema_migrations')")
    if table is None:
        return None
    rows = await conn.fetch("SELECT version, applied_at FROM schema_migrations ORDER BY applied_at, version")
    return [{"version": r["version"], "applied_at": r["applied_at"].isoformat()} for r in rows]


async def validate_schema_version() -> dict:
    """
    Raises:
        RuntimeError: schema missing or at a different version
    """
    async with db_conn() as conn:
        migrations = await _applied_versions(conn)

    if not migrations:
        error = f"Database schema is not initialized. {_MIGRATE_HINT}"
        logger.critical(error)
        raise RuntimeError(error)

    current = migrations[-1]["version"]
    if current != settings.expected_schema_version:
        error = (
            f"Schema version mismatch: expected {settings.expected_schema_version}, "
            f"found {current}. {_MIGRATE_HINT}"
        )
        logger.critical(error, extra={"expected": settings.expected_schema_version, "current": current})
        raise RuntimeError(error)

    logger.info(f"Schema version validated: {current}")
    return {"ok": True, "current_version": current, "expected_version": settings.expected_schema_version}


async def get_schema_info() -> dict:
    """Schema state for the readiness probe."""
    async with db_conn() as conn:
        migrations = await _applied_versions(conn)

    if not migrations:
        return {"initialized": False, "migrations_applied": 0, "latest_version": None}

    latest = migrations[-1]["version"]
    return {
        "initialized": True,
        "migrations_applied": len(migrations),
        "latest_version": latest,
        "expected_version": settings.expected_schema_version,
        "is_compatible": latest == settings.expected_schema_version,
    }
