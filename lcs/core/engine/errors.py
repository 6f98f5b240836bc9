# lcs/core/engine/errors.py
"""
Typed errors for the dispatch engine.

Expected business outcomes (gate blocks, missing recipients, adapter
rejections) are never raised; they travel as structured results.
Only the conditions below escalate as exceptions.
"""
from __future__ import annotations


class LcsError(Exception):
    """Base class for all dispatch engine errors."""

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class IdFormatError(LcsError, ValueError):
    """A minted or supplied id does not match its canonical format."""


class UnknownChannelError(LcsError, LookupError):
    """No adapter is registered for the requested channel."""

    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(f"No adapter registered for channel '{channel}'")

