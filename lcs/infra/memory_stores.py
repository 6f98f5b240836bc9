# lcs/infra/memory_stores.py
"""
In-memory implementations of every storage port.

Used by the test suite and by local runs without Postgres.  Not safe to
share between processes; each instance is its own little database.
"""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from lcs.core.engine.domain import (
    AuditEvent,
    Channel,
    ErrorRecord,
    Frame,
    LifecyclePhase,
    SEND_EVENT_TYPES,
    Signal,
    utcnow,
)
from lcs.core.engine.ports import AdapterStatus, QueuedSignal, QueueStatus


class InMemoryEventLog:
    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def append(self, event: AuditEvent) -> None:
        self.events.append(event)

    async def list_for_communication(self, communication_id: str) -> list[AuditEvent]:
        return [e for e in self.events if e.communication_id == communication_id]

    def event_types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


class InMemoryErrorLog:
    def __init__(self) -> None:
        self.records: list[ErrorRecord] = []

    async def append(self, record: ErrorRecord) -> None:
        self.records.append(record)

    async def count_strikes(self, communication_id: str) -> int:
        return sum(1 for r in self.records if r.communication_id == communication_id)


class InMemoryIntelligenceRepository:
    def __init__(self, snapshots: Optional[dict[str, dict[str, Any]]] = None) -> None:
        self.snapshots: dict[str, dict[str, Any]] = dict(snapshots or {})

    def put(self, sovereign_company_id: str, snapshot: dict[str, Any]) -> None:
        self.snapshots[sovereign_company_id] = snapshot

    async def get_snapshot(self, sovereign_company_id: str) -> Optional[dict[str, Any]]:
        snapshot = self.snapshots.get(sovereign_company_id)
        return dict(snapshot) if snapshot is not None else None


class InMemoryFrameRepository:
    def __init__(self, frames: Iterable[Frame] = ()) -> None:
        self.frames: dict[str, Frame] = {f.frame_id: f for f in frames}

    def add(self, frame: Frame) -> None:
        self.frames[frame.frame_id] = frame

    async def find_frame(self, phase: LifecyclePhase, tier: int) -> Optional[Frame]:
        candidates = [
            f for f in self.frames.values()
            if f.is_active and f.lifecycle_phase == phase and f.tier >= tier
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda f: (f.tier, f.frame_id))

    async def get_frame(self, frame_id: str) -> Optional[Frame]:
        frame = self.frames.get(frame_id)
        return frame if frame and frame.is_active else None


class InMemoryContextStore:
    """Projection over an ``InMemoryEventLog`` plus a fixed adapter table."""

    def __init__(
        self,
        event_log: InMemoryEventLog,
        adapter_statuses: Iterable[AdapterStatus] = (),
    ) -> None:
        self.event_log = event_log
        self.adapter_statuses: dict[Channel, AdapterStatus] = {
            s.channel: s for s in adapter_statuses
        }

    def set_adapter_status(self, status: AdapterStatus) -> None:
        self.adapter_statuses[status.channel] = status

    def _history(self, entity_id: str) -> list[AuditEvent]:
        return [e for e in self.event_log.events if e.entity_id == entity_id and e.gate is None]

    async def count_sends(
        self,
        *,
        since: datetime,
        agent_number: str | None = None,
        channel: Channel | None = None,
        sovereign_company_id: str | None = None,
    ) -> int:
        count = 0
        for e in self.event_log.events:
            if e.event_type not in SEND_EVENT_TYPES or e.created_at < since:
                continue
            if agent_number and e.agent_number != agent_number:
                continue
            if channel and e.channel != channel:
                continue
            if sovereign_company_id and e.sovereign_company_id != sovereign_company_id:
                continue
            count += 1
        return count

    async def last_contact_at(self, entity_id: str) -> Optional[datetime]:
        sends = [e.created_at for e in self._history(entity_id) if e.event_type in SEND_EVENT_TYPES]
        return max(sends) if sends else None

    async def latest_entity_event(self, entity_id: str) -> Optional[AuditEvent]:
        history = self._history(entity_id)
        # Appends are chronological, so the last of equal timestamps wins
        return max(reversed(history), key=lambda e: e.created_at) if history else None

    async def entity_event_types(self, entity_id: str) -> set[str]:
        return {e.event_type.value for e in self._history(entity_id)}

    async def get_adapter_status(self, channel: Channel) -> Optional[AdapterStatus]:
        return self.adapter_statuses.get(Channel(channel))


class InMemorySignalQueue:
    def __init__(self) -> None:
        self.items: dict[str, QueuedSignal] = {}
        self.outcomes: dict[str, tuple[Optional[str], Optional[str]]] = {}
        self._started: dict[str, datetime] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def enqueue(
        self,
        signal: Signal,
        *,
        attempt: int = 1,
        communication_id: Optional[str] = None,
        channel: Optional[Channel] = None,
        delay_seconds: float = 0,
    ) -> str:
        now = utcnow()
        queue_id = str(next(self._ids))
        self.items[queue_id] = QueuedSignal(
            id=queue_id,
            signal=signal,
            attempt=attempt,
            communication_id=communication_id,
            channel_override=Channel(channel) if channel else None,
            scheduled_at=now + timedelta(seconds=delay_seconds),
            created_at=now,
        )
        return queue_id

    async def claim_batch(self, batch_size: int = 10) -> list[QueuedSignal]:
        async with self._lock:
            now = utcnow()
            due = sorted(
                (q for q in self.items.values()
                 if q.status is QueueStatus.PENDING and q.scheduled_at <= now),
                key=lambda q: (q.scheduled_at, int(q.id)),
            )[:batch_size]
            claimed = []
            for item in due:
                item.status = QueueStatus.PROCESSING
                self._started[item.id] = now
                claimed.append(replace(item))
            return claimed

    async def finish(
        self,
        queue_id: str,
        status: QueueStatus,
        *,
        outcome: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        self.items[queue_id].status = QueueStatus(status)
        self.outcomes[queue_id] = (outcome, error_message)

    async def reset_stale_processing(self, timeout_seconds: int = 300) -> int:
        cutoff = utcnow() - timedelta(seconds=timeout_seconds)
        count = 0
        for item in self.items.values():
            if item.status is QueueStatus.PROCESSING and self._started.get(item.id, cutoff) < cutoff:
                item.status = QueueStatus.PENDING
                item.scheduled_at = utcnow()
                count += 1
        return count

    async def count_by_status(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for item in self.items.values():
            counts[item.status.value] = counts.get(item.status.value, 0) + 1
        return counts
