# lcs/infra/migrations_async.py
"""
Async database migrations runner (asyncpg).
"""
from __future__ import annotations
from pathlib import Path

from lcs.infra.db_async import db_conn
from lcs.infra.logging_config import get_logger

logger = get_logger(__name__)


def sql_dir() -> Path:
    """SQL migrations directory: lcs/infra/sql"""
    return Path(__file__).resolve().parent / "sql"


def migration_files() -> list[Path]:
    """Migration files in apply order (001_..., 002_..., ...)."""
    return sorted(p for p in sql_dir().glob("*.sql") if p.is_file())


async def apply_migrations() -> dict:
    """
    Apply pending SQL migrations in one transaction.

    Applied versions are tracked in schema_migrations; a file is never
    applied twice.

    Returns:
        dict with keys ok, applied (filenames applied in this run), count
    """
    files = migration_files()

    async with db_conn(autocommit=False) as conn:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations(
              version text PRIMARY KEY,
              applied_at timestamptz NOT NULL DEFAULT now()
            )
            """
        )

        rows = await conn.fetch("SELECT version FROM schema_migrations")
        applied = {row["version"] for row in rows}

        applied_now = []
        for path in files:
            if path.name in applied:
                logger.debug(f"Migration {path.name} already applied, skipping")
                continue

            logger.info(f"Applying migration: {path.name}")
            await conn.execute(path.read_text(encoding="utf-8"))
            await conn.execute("INSERT INTO schema_migrations(version) VALUES ($1)", path.name)
            applied_now.append(path.name)

    logger.info(f"Migrations complete: {len(applied_now)} applied")
    return {"ok": True, "applied": applied_now, "count": len(applied_now)}
