"""Exceptions raised by the turn engine.

Truncation, refusal and exhaustion are outcomes, not exceptions; they
come back as a TurnResult. Only misuse, session contention and
cancellation raise.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from turnkeeper.engine.turn_engine import TurnResult


class TurnConfigurationError(ValueError):
    """Invalid budget or request. Raised before any request is sent."""


class SessionBusyError(RuntimeError):
    """Another turn holds the session and the policy is 'reject'."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id!r} already has a turn in progress")
        self.session_id = session_id


class TurnCancelledError(asyncio.CancelledError):
    """Cancellation carrying the best partial result."""

    def __init__(self, partial_result: TurnResult):
        super().__init__("turn cancelled")
        self.partial_result = partial_result
