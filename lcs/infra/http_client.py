# lcs/infra/http_client.py
"""
Shared HTTP client sessions for delivery adapters.

Provides named, lazy-initialized aiohttp.ClientSession singletons
to avoid per-send session creation overhead and TCP connection churn.

Session profiles
~~~~~~~~~~~~~~~~
- **adapter** – outbound provider calls (Mailgun, HeyReach).  The total
  timeout is ``settings.adapter_timeout_seconds``; this is the only
  bounded wait in a pipeline run.

Shutdown
~~~~~~~~
Call ``close_all_sessions()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from lcs.config import settings
from lcs.infra.logging_config import get_logger

logger = get_logger(__name__)

_sessions: dict[str, aiohttp.ClientSession] = {}


def _get_or_create(
    name: str,
    timeout: aiohttp.ClientTimeout,
    limit: int = 10,
) -> aiohttp.ClientSession:
    """Return an existing session or create a new one."""
    session = _sessions.get(name)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            timeout=timeout,
            connector=aiohttp.TCPConnector(
                keepalive_timeout=30,
                limit=limit,
                enable_cleanup_closed=True,
            ),
        )
        _sessions[name] = session
        logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
    return session


def get_adapter_session() -> aiohttp.ClientSession:
    """Session for delivery adapter calls."""
    return _get_or_create(
        "adapter",
        aiohttp.ClientTimeout(total=settings.adapter_timeout_seconds, connect=5),
        limit=20,
    )


async def close_all_sessions() -> None:
    """Gracefully close every managed session.  Call during app shutdown."""
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
