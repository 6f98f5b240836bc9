# lcs/infra/context_assembler.py
"""
Builds the three gate contexts for a run from storage and settings.

Gates are pure functions over these values; every lookup they depend on
happens here, once, before the pipeline starts.
"""
from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import Any, Optional

from lcs.config import Settings, settings as default_settings
from lcs.core.engine.domain import (
    Channel,
    DataSource,
    EventType,
    MAX_TIER,
    Recipient,
    SEND_EVENT_TYPES,
    Signal,
    utcnow,
)
from lcs.core.engine.ports import (
    AdapterStatus,
    AsyncContextStore,
    AsyncIntelligenceRepository,
)
from lcs.core.gates.types import (
    CapacityContext,
    FreshnessContext,
    GateContexts,
    SourceFreshness,
    SuppressionContext,
    SuppressionState,
)
from lcs.core.pipeline.steps import RECIPIENT_SLOTS, pick_recipient
from lcs.infra.logging_config import get_logger

logger = get_logger(__name__)

# Latest event types that put a recipient into a state
_SUPPRESSING_EVENTS = {
    EventType.DELIVERY_UNSUBSCRIBED.value,
    EventType.DELIVERY_COMPLAINED.value,
    EventType.DELIVERY_BOUNCED.value,
}
_CONTACT_EVENTS = {e.value for e in SEND_EVENT_TYPES} | {
    EventType.OPENED.value,
    EventType.CLICKED.value,
}


def start_of_utc_day(now: datetime) -> datetime:
    return datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable fetched_at timestamp: {value!r}")
        return None


def _slot_for(snapshot: dict[str, Any], recipient: Recipient) -> Optional[str]:
    for slot in RECIPIENT_SLOTS:
        if str(snapshot.get(f"{slot}_entity_id")) == recipient.entity_id:
            return slot
    return None


class ContextAssembler:
    def __init__(
        self,
        store: AsyncContextStore,
        intelligence: AsyncIntelligenceRepository,
        settings: Settings = default_settings,
    ) -> None:
        self.store = store
        self.intelligence = intelligence
        self.settings = settings

    async def assemble(
        self,
        signal: Signal,
        channel: Channel,
        *,
        now: Optional[datetime] = None,
    ) -> GateContexts:
        now = now or utcnow()
        snapshot = None
        if signal.sovereign_company_id:
            snapshot = await self.intelligence.get_snapshot(signal.sovereign_company_id)

        return GateContexts(
            capacity=await self.capacity_context(signal, channel, now),
            suppression=await self.suppression_context(signal, channel, snapshot, now),
            freshness=self.freshness_context(snapshot),
        )

    async def capacity_context(self, signal: Signal, channel: Channel, now: datetime) -> CapacityContext:
        s = self.settings
        today = start_of_utc_day(now)
        agent = signal.agent_number or s.default_agent_number
        status = await self.store.get_adapter_status(channel) or AdapterStatus(channel=Channel(channel))

        return CapacityContext(
            founder_calendar_available=s.founder_calendar_available,
            agent_number=agent,
            agent_daily_cap=s.agent_daily_cap,
            agent_sent_today=await self.store.count_sends(since=today, agent_number=agent),
            adapter_daily_cap=status.daily_cap,
            adapter_sent_today=await self.store.count_sends(since=today, channel=channel),
            adapter_health_status=status.health_status,
        )

    async def suppression_context(
        self,
        signal: Signal,
        channel: Channel,
        snapshot: Optional[dict[str, Any]],
        now: datetime,
    ) -> SuppressionContext:
        s = self.settings
        company_sends = 0
        if signal.sovereign_company_id:
            company_sends = await self.store.count_sends(
                since=now - timedelta(days=7),
                sovereign_company_id=signal.sovereign_company_id,
            )

        base = dict(
            min_contact_interval_days=s.min_contact_interval_days,
            company_sends_this_week=company_sends,
            company_weekly_cap=s.company_weekly_cap,
            lifecycle_phase=signal.lifecycle_phase,
            channel=Channel(channel),
        )

        # Suppression is about the person Step 5 will pick
        recipient = pick_recipient(snapshot)
        if recipient is None:
            return SuppressionContext(
                suppression_state=SuppressionState.ACTIVE,
                last_contact_at=None,
                **base,
            )

        history = await self.store.entity_event_types(recipient.entity_id)
        latest = await self.store.latest_entity_event(recipient.entity_id)
        last_contact = await self.store.last_contact_at(recipient.entity_id)
        slot = _slot_for(snapshot, recipient)

        return SuppressionContext(
            suppression_state=self._state_from(latest, s.min_contact_interval_days, now),
            last_contact_at=last_contact,
            never_contact=bool(slot and snapshot.get(f"{slot}_never_contact")),
            unsubscribed=EventType.DELIVERY_UNSUBSCRIBED.value in history,
            hard_bounced=EventType.DELIVERY_BOUNCED.value in history,
            complained=EventType.DELIVERY_COMPLAINED.value in history,
            **base,
        )

    @staticmethod
    def _state_from(latest, interval_days: int, now: datetime) -> SuppressionState:
        if latest is None:
            return SuppressionState.ACTIVE
        event_type = latest.event_type.value
        if event_type in _SUPPRESSING_EVENTS:
            return SuppressionState.SUPPRESSED
        if event_type == EventType.RECIPIENT_PARKED.value:
            return SuppressionState.PARKED
        if event_type in _CONTACT_EVENTS and now - latest.created_at < timedelta(days=interval_days):
            return SuppressionState.COOLED
        return SuppressionState.ACTIVE

    def freshness_context(self, snapshot: Optional[dict[str, Any]]) -> FreshnessContext:
        windows = self.settings.freshness_windows
        snapshot = snapshot or {}
        sources = tuple(
            SourceFreshness(
                source=source,
                data_fetched_at=_parse_timestamp(snapshot.get(f"{source.value.lower()}_fetched_at")),
                freshness_window_days=windows[source.value],
            )
            for source in DataSource
        )
        # Tier and frame fields are filled in by the orchestrator
        return FreshnessContext(current_tier=MAX_TIER, sources=sources)
