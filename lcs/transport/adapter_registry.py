# lcs/transport/adapter_registry.py
"""
Explicit channel → adapter mapping.

Adding a channel means adding a ``Channel`` member and registering its
adapter here; ``resolve`` fails loudly for anything unregistered.
"""
from __future__ import annotations

from typing import Iterable, Optional

from lcs.core.engine.adapters import Adapter
from lcs.core.engine.domain import Channel
from lcs.core.engine.errors import UnknownChannelError
from lcs.infra.logging_config import get_logger

logger = get_logger(__name__)


class AdapterRegistry:
    def __init__(self, adapters: Iterable[Adapter] = ()) -> None:
        self._adapters: dict[Channel, Adapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: Adapter) -> None:
        channel = Channel(adapter.channel)
        if channel in self._adapters:
            logger.warning("Replacing adapter for channel %s", channel.value)
        self._adapters[channel] = adapter

    def get(self, channel: Channel | str) -> Optional[Adapter]:
        try:
            return self._adapters.get(Channel(channel))
        except ValueError:
            return None

    def resolve(self, channel: Channel | str) -> Adapter:
        adapter = self.get(channel)
        if adapter is None:
            raise UnknownChannelError(str(getattr(channel, "value", channel)))
        return adapter

    def channels(self) -> list[Channel]:
        return list(self._adapters)


def build_default_registry() -> AdapterRegistry:
    """Mailgun, HeyReach and sales handoff, configured from settings."""
    from lcs.transport.heyreach_adapter import HeyReachAdapter
    from lcs.transport.mailgun_adapter import MailgunAdapter
    from lcs.transport.sales_handoff_adapter import SalesHandoffAdapter

    registry = AdapterRegistry([MailgunAdapter(), HeyReachAdapter(), SalesHandoffAdapter()])
    for channel in registry.channels():
        if not registry.resolve(channel).is_configured():
            logger.warning("Adapter for channel %s is not configured", channel.value)
    return registry
