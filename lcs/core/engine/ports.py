# lcs/core/engine/ports.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from lcs.core.engine.domain import (
    AdapterHealth,
    AuditEvent,
    Channel,
    ErrorRecord,
    Frame,
    LifecyclePhase,
    Signal,
)


@dataclass(frozen=True)
class AdapterStatus:
    """Row of the adapter registry the capacity gate reads."""
    channel: Channel
    health_status: AdapterHealth = AdapterHealth.HEALTHY
    daily_cap: Optional[int] = None  # None = unlimited


# ============================================================================
# ASYNC PROTOCOLS
# ============================================================================

class AsyncEventLog(Protocol):
    async def append(self, event: AuditEvent) -> None: ...

    async def list_for_communication(self, communication_id: str) -> list[AuditEvent]:
        """All events for a communication, oldest first (webhook correlation)."""
        ...


class AsyncErrorLog(Protocol):
    async def append(self, record: ErrorRecord) -> None: ...

    async def count_strikes(self, communication_id: str) -> int:
        """Number of error records already written for ``communication_id``."""
        ...


class AsyncIntelligenceRepository(Protocol):
    async def get_snapshot(self, sovereign_company_id: str) -> Optional[dict[str, Any]]:
        """
        Latest intelligence snapshot for a company, or None if unknown.

        Keys used by the pipeline: ``intelligence_tier``, ``{ceo,cfo,hr}_entity_id``,
        ``{ceo,cfo,hr}_email``, ``{ceo,cfo,hr}_linkedin_url`` and
        ``{people,dol,blog,sitemap}_fetched_at``.
        """
        ...


class AsyncFrameRepository(Protocol):
    async def find_frame(self, phase: LifecyclePhase, tier: int) -> Optional[Frame]:
        """Richest active frame for ``phase`` whose tier requirement ``tier`` satisfies."""
        ...

    async def get_frame(self, frame_id: str) -> Optional[Frame]: ...


class AsyncContextStore(Protocol):
    """Read model over the event log used to assemble gate contexts."""

    async def count_sends(
        self,
        *,
        since: datetime,
        agent_number: str | None = None,
        channel: Channel | None = None,
        sovereign_company_id: str | None = None,
    ) -> int: ...

    async def last_contact_at(self, entity_id: str) -> Optional[datetime]: ...

    async def latest_entity_event(self, entity_id: str) -> Optional[AuditEvent]:
        """Most recent event for an entity, gate blocks excluded."""
        ...

    async def entity_event_types(self, entity_id: str) -> set[str]:
        """Distinct event types ever recorded for an entity, gate blocks excluded."""
        ...

    async def get_adapter_status(self, channel: Channel) -> Optional[AdapterStatus]: ...


# ============================================================================
# SIGNAL QUEUE
# ============================================================================

class QueueStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"  # pipeline delivered
    SKIPPED = "SKIPPED"      # gate block or rejected input
    FAILED = "FAILED"        # delivery failure or crash


@dataclass
class QueuedSignal:
    """A claimed row of the signal queue."""
    id: str
    signal: Signal
    attempt: int = 1
    communication_id: Optional[str] = None
    channel_override: Optional[Channel] = None
    status: QueueStatus = QueueStatus.PENDING
    scheduled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AsyncSignalQueue(Protocol):
    async def enqueue(
        self,
        signal: Signal,
        *,
        attempt: int = 1,
        communication_id: Optional[str] = None,
        channel: Optional[Channel] = None,
        delay_seconds: float = 0,
    ) -> str: ...

    async def claim_batch(self, batch_size: int = 10) -> list[QueuedSignal]: ...

    async def finish(
        self,
        queue_id: str,
        status: QueueStatus,
        *,
        outcome: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None: ...

    async def reset_stale_processing(self, timeout_seconds: int = 300) -> int: ...

    async def count_by_status(self) -> dict[str, int]: ...
