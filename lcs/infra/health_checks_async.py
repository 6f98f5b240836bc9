# lcs/infra/health_checks_async.py
from __future__ import annotations
import time
from typing import Any, Dict
from enum import Enum

from lcs.infra.db_async import get_pool
from lcs.infra.logging_config import get_logger
from lcs.infra.schema_validator import get_schema_info

logger = get_logger(__name__)

REQUIRED_TABLES = (
    "lcs_event",
    "lcs_err0",
    "lcs_frame_registry",
    "lcs_adapter_registry",
    "lcs_company_intelligence",
    "lcs_signal_queue",
)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class AsyncHealthCheck:
    """Base class for async health checks"""

    def __init__(self, name: str, critical: bool = True):
        self.name = name
        self.critical = critical

    async def check(self) -> Dict[str, Any]:
        """Returns dict with 'status', 'details', and optionally 'error'"""
        raise NotImplementedError


class AsyncDatabaseHealthCheck(AsyncHealthCheck):
    """Connectivity plus presence of every LCS table"""

    def __init__(self):
        super().__init__("database", critical=True)

    async def check(self) -> Dict[str, Any]:
        start = time.time()
        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                missing = [
                    table for table in REQUIRED_TABLES
                    if await conn.fetchval("SELECT to_regclass($1)", table) is None
                ]
        except Exception as exc:
            logger.error("Database health check failed", exc_info=True)
            return {
                "status": HealthStatus.UNHEALTHY,
                "details": "Database connection failed",
                "error": str(exc)[:200],
            }

        if missing:
            return {
                "status": HealthStatus.UNHEALTHY,
                "details": "Missing required tables",
                "error": f"Missing: {', '.join(missing)}",
            }

        duration = time.time() - start
        if duration > 1.0:
            return {
                "status": HealthStatus.DEGRADED,
                "details": f"Slow database response: {duration:.3f}s",
                "response_time": duration,
            }
        return {"status": HealthStatus.HEALTHY, "details": "Database operational", "response_time": duration}


class AsyncAdapterRegistryHealthCheck(AsyncHealthCheck):
    """Reports paused or degraded adapters; never fails readiness"""

    def __init__(self):
        super().__init__("adapters", critical=False)

    async def check(self) -> Dict[str, Any]:
        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT channel, health_status FROM lcs_adapter_registry WHERE is_active"
                )
        except Exception as exc:
            logger.error("Adapter registry health check failed", exc_info=True)
            return {
                "status": HealthStatus.DEGRADED,
                "details": "Adapter registry check failed",
                "error": str(exc)[:200],
            }

        adapters = {row["channel"]: row["health_status"] for row in rows}
        unhealthy = sorted(ch for ch, status in adapters.items() if status != "HEALTHY")
        return {
            "status": HealthStatus.DEGRADED if unhealthy else HealthStatus.HEALTHY,
            "details": f"Not healthy: {', '.join(unhealthy)}" if unhealthy else "All adapters healthy",
            "adapters": adapters,
        }


class AsyncSignalQueueHealthCheck(AsyncHealthCheck):
    """Backlog of the signal queue"""

    def __init__(self):
        super().__init__("signal_queue", critical=False)

    async def check(self) -> Dict[str, Any]:
        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                pending = await conn.fetchval(
                    "SELECT count(*)::int FROM lcs_signal_queue WHERE status = 'PENDING' AND scheduled_at <= now()"
                )
        except Exception as exc:
            logger.error("Signal queue health check failed", exc_info=True)
            return {
                "status": HealthStatus.DEGRADED,
                "details": "Signal queue check failed",
                "error": str(exc)[:200],
            }
        return {"status": HealthStatus.HEALTHY, "details": "Signal queue readable", "due_signals": pending}


class AsyncHealthChecker:
    """Aggregate async health checks"""

    def __init__(self):
        self.checks: list[AsyncHealthCheck] = [
            AsyncDatabaseHealthCheck(),
            AsyncAdapterRegistryHealthCheck(),
            AsyncSignalQueueHealthCheck(),
        ]

    async def run_checks(self, include_non_critical: bool = True) -> Dict[str, Any]:
        """
        Returns:
            {"status": "healthy" | "degraded" | "unhealthy", "checks": {...}, "schema": {...}, "timestamp": float}
        """
        results = {}
        overall_status = HealthStatus.HEALTHY

        for check in self.checks:
            if not include_non_critical and not check.critical:
                continue

            result = await check.check()
            results[check.name] = result

            if result["status"] == HealthStatus.UNHEALTHY and check.critical:
                overall_status = HealthStatus.UNHEALTHY
            elif result["status"] != HealthStatus.HEALTHY and overall_status == HealthStatus.HEALTHY:
                overall_status = HealthStatus.DEGRADED

        try:
            schema_info = await get_schema_info()
        except Exception as exc:
            schema_info = {"error": str(exc)[:200]}

        return {
            "status": overall_status.value,
            "checks": results,
            "schema": schema_info,
            "timestamp": time.time(),
        }


_async_health_checker = AsyncHealthChecker()


def get_async_health_checker() -> AsyncHealthChecker:
    return _async_health_checker
