# lcs/core/engine/ids.py
"""
Communication and message-run identifiers.

    communication_id = LCS-{OUT|SAL|CLI}-{YYYYMMDD}-{ULID}
    message_run_id   = RUN-{communication_id}-{MG|HR|SH}-{NNN}

The communication id is minted once per signal (Step 4) and the
message run id once per delivery attempt (Step 6). Both are the only
correlation keys webhook feedback can use, so their format is fixed.

Minting needs no database round trip: the date comes from the clock
and the suffix from a ULID (48-bit timestamp + 80 random bits), which
is what makes concurrent runs safe without coordination.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import NamedTuple, Optional

import ulid

from lcs.core.engine.domain import Channel, LifecyclePhase, PHASE_CODES
from lcs.core.engine.errors import IdFormatError

COMMUNICATION_ID_REGEX = re.compile(r"^LCS-(OUT|SAL|CLI)-(\d{8})-([A-Z0-9]{10,})$")
MESSAGE_RUN_ID_REGEX = re.compile(
    r"^RUN-(LCS-(?:OUT|SAL|CLI)-\d{8}-[A-Z0-9]{10,})-(MG|HR|SH)-(\d{3})$"
)

MIN_ATTEMPT = 1
MAX_ATTEMPT = 999


class CommunicationId(str):
    """A ``str`` that is guaranteed to be a well-formed communication id."""

    def __new__(cls, value: str) -> "CommunicationId":
        if not isinstance(value, str) or not COMMUNICATION_ID_REGEX.match(value):
            raise IdFormatError(f"Invalid communication_id: {value!r}")
        return super().__new__(cls, value)


class MessageRunId(str):
    """A ``str`` that is guaranteed to be a well-formed message run id."""

    def __new__(cls, value: str) -> "MessageRunId":
        if not isinstance(value, str) or not MESSAGE_RUN_ID_REGEX.match(value):
            raise IdFormatError(f"Invalid message_run_id: {value!r}")
        return super().__new__(cls, value)


class ParsedCommunicationId(NamedTuple):
    phase_code: str
    date: str
    suffix: str


class ParsedMessageRunId(NamedTuple):
    communication_id: CommunicationId
    channel: Channel
    attempt: int


def mint_communication_id(
    phase: LifecyclePhase | str,
    *,
    now: Optional[datetime] = None,
) -> CommunicationId:
    """
    Mint a communication id for ``phase``.

    Args:
        phase: Lifecycle phase of the signal
        now: Clock override; the UTC calendar date is embedded

    Raises:
        IdFormatError: the assembled id failed its own format check
    """
    phase = LifecyclePhase(phase)
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)

    raw = f"LCS-{PHASE_CODES[phase]}-{moment.strftime('%Y%m%d')}-{str(ulid.new())}"
    try:
        return CommunicationId(raw)
    except IdFormatError as exc:
        raise IdFormatError(f"ID minter produced invalid communication_id: {raw}") from exc


def mint_message_run_id(
    communication_id: str,
    channel: Channel | str,
    attempt: int,
) -> MessageRunId:
    """Mint the id for delivery attempt ``attempt`` (1-999) over ``channel``."""
    channel = Channel(channel)
    if not isinstance(attempt, int) or not MIN_ATTEMPT <= attempt <= MAX_ATTEMPT:
        raise IdFormatError(f"Attempt must be {MIN_ATTEMPT}-{MAX_ATTEMPT}, got {attempt!r}")

    raw = f"RUN-{communication_id}-{channel.value}-{attempt:03d}"
    try:
        return MessageRunId(raw)
    except IdFormatError as exc:
        raise IdFormatError(f"ID minter produced invalid message_run_id: {raw}") from exc


def is_valid_communication_id(value: object) -> bool:
    return isinstance(value, str) and COMMUNICATION_ID_REGEX.match(value) is not None


def is_valid_message_run_id(value: object) -> bool:
    return isinstance(value, str) and MESSAGE_RUN_ID_REGEX.match(value) is not None


def parse_communication_id(value: str) -> Optional[ParsedCommunicationId]:
    """Split a communication id into its parts, or None if malformed."""
    if not isinstance(value, str):
        return None
    m = COMMUNICATION_ID_REGEX.match(value)
    if not m:
        return None
    return ParsedCommunicationId(phase_code=m.group(1), date=m.group(2), suffix=m.group(3))


def parse_message_run_id(value: str) -> Optional[ParsedMessageRunId]:
    """Split a message run id into communication id, channel and attempt, or None."""
    if not isinstance(value, str):
        return None
    m = MESSAGE_RUN_ID_REGEX.match(value)
    if not m:
        return None
    attempt = int(m.group(3))
    if attempt < MIN_ATTEMPT:
        return None
    return ParsedMessageRunId(
        communication_id=CommunicationId(m.group(1)),
        channel=Channel(m.group(2)),
        attempt=attempt,
    )
