# lcs/core/engine/__init__.py
"""
Core engine -- provider-agnostic dispatch domain.

This package contains the domain records and enums, the id minter,
abstract protocols (ports), the adapter contract, the ORBT handler and
the use-case service that drives the pipeline.

Canonical imports:
    from lcs.core.engine.domain import Signal, Channel, LifecyclePhase
    from lcs.core.engine.ids import mint_communication_id, mint_message_run_id
    from lcs.core.engine.ports import AsyncEventLog, AsyncErrorLog
    from lcs.core.engine.use_cases import DispatchService
"""
from lcs.core.engine.domain import (  # noqa: F401
    AuditEvent,
    Channel,
    DeliveryStatus,
    ErrorRecord,
    EventType,
    Frame,
    LifecyclePhase,
    RunOutcome,
    Signal,
)
from lcs.core.engine.adapters import Adapter, AdapterPayload, AdapterResponse  # noqa: F401
from lcs.core.engine.errors import IdFormatError, LcsError, UnknownChannelError  # noqa: F401
