# lcs/core/engine/use_cases.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from lcs.core.engine.domain import Channel, Signal
from lcs.core.gates.types import GateContexts
from lcs.core.pipeline.orchestrator import PipelineOrchestrator
from lcs.core.pipeline.types import PipelineResult


class AsyncContextAssembler(Protocol):
    async def assemble(
        self, signal: Signal, channel: Channel, *, now: Optional[datetime] = None
    ) -> GateContexts: ...


class DispatchService:
    """
    Application service / use-case layer.
    Workflow: resolve channel -> assemble gate contexts -> run pipeline.

    Used by both the HTTP surface (POST /signals) and the signal worker,
    so that both paths see identical gate inputs.
    """

    def __init__(
        self,
        *,
        orchestrator: PipelineOrchestrator,
        assembler: AsyncContextAssembler,
        default_channel: Channel = Channel.MG,
    ) -> None:
        self.orchestrator = orchestrator
        self.assembler = assembler
        self.default_channel = Channel(default_channel)

    def resolve_channel(self, signal: Signal, channel: Optional[Channel] = None) -> Channel:
        """Explicit override, then the signal's preference, then the default."""
        return Channel(channel or signal.preferred_channel or self.default_channel)

    async def dispatch(
        self,
        signal: Signal,
        *,
        channel: Optional[Channel] = None,
        attempt: int = 1,
        communication_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PipelineResult:
        resolved = self.resolve_channel(signal, channel)
        contexts = await self.assembler.assemble(signal, resolved, now=now)
        return await self.orchestrator.run(
            signal,
            contexts,
            attempt=attempt,
            communication_id=communication_id,
            channel=resolved,
            now=now,
        )
