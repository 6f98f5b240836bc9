# lcs/infra/db_resilience_async.py
"""
Async database resilience utilities.
Retry logic for transient asyncpg failures.

Only whole operations are retried (``retry_on_transient_error``), never a
half-executed block: an append that failed mid-transaction is rolled
back before the next attempt.  Non-transient errors propagate at once.
"""
from __future__ import annotations
import asyncio
from typing import Callable
from contextlib import asynccontextmanager
from functools import wraps

import asyncpg
from lcs.infra.db_async import db_conn
from lcs.infra.logging_config import get_logger
from lcs.infra.metrics import AppMetrics

logger = get_logger(__name__)


def is_transient_error(exc: Exception) -> bool:
    """
    Check if database error is transient (should retry).

    Transient errors:
    - Connection errors / server closed connection
    - Too many connections
    - Deadlock, serialization failure
    """
    if isinstance(exc, (
        asyncpg.PostgresConnectionError,
        asyncpg.TooManyConnectionsError,
        asyncpg.DeadlockDetectedError,
        asyncpg.SerializationError,
        ConnectionError,
        asyncio.TimeoutError,
    )):
        return True

    if isinstance(exc, asyncpg.PostgresError):
        # Constraint violations, syntax errors etc. never heal by retrying
        return False

    error_message = str(exc).lower()
    transient_patterns = [
        "connection",
        "timeout",
        "closed",
        "network",
        "too many connections",
        "connection reset",
    ]
    return any(pattern in error_message for pattern in transient_patterns)


def retry_on_transient_error(
    max_retries: int = 3,
    initial_delay: float = 0.1,
    backoff_factor: float = 2.0,
    max_delay: float = 5.0
):
    """
    Decorator to retry async function on transient database errors.

    Example:
        @retry_on_transient_error(max_retries=3)
        async def append(self, event):
            async with safe_db_conn() as conn:
                await conn.execute(INSERT_SQL, ...)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    if not is_transient_error(exc):
                        AppMetrics.database_error(func.__name__)
                        logger.error(f"Non-transient error in {func.__name__}: {exc}", exc_info=True)
                        raise

                    if attempt >= max_retries:
                        AppMetrics.database_error(func.__name__)
                        logger.error(f"Max retries ({max_retries}) exceeded in {func.__name__}", exc_info=True)
                        raise

                    logger.warning(
                        f"Transient error in {func.__name__} (attempt {attempt + 1}/{max_retries}): {exc}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)

        return wrapper
    return decorator


@asynccontextmanager
async def safe_db_conn(autocommit: bool = True):
    """
    Database connection for repository code.

    Usage:
        async with safe_db_conn() as conn:
            rows = await conn.fetch("SELECT ...")

    Pair with ``retry_on_transient_error`` on the calling method to get
    retries; the context manager itself never re-enters its body.
    """
    async with db_conn(autocommit=autocommit) as conn:
        yield conn
