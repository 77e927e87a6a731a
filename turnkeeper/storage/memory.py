"""In-process ThinkingState store with optional TTL."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Callable

from turnkeeper.schemas import ThinkingState

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryThinkingStateStore:
    """Dict-backed store. Entries are copied in and out.

    With a ttl, entries expire ``ttl`` after their last write, or after
    their last read too when ``sliding_expiration`` is on.
    """

    def __init__(
        self,
        ttl: timedelta | None = None,
        sliding_expiration: bool = True,
        clock: Clock = _utcnow,
    ):
        self.ttl = ttl
        self.sliding_expiration = sliding_expiration
        self._clock = clock
        self._entries: dict[str, tuple[ThinkingState, datetime | None]] = {}

    def _expiry(self) -> datetime | None:
        return self._clock() + self.ttl if self.ttl else None

    def _live(self, session_id: str) -> ThinkingState | None:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        state, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._entries[session_id]
            logger.debug("Thinking state for %s expired", session_id)
            return None
        return state

    async def get(self, session_id: str) -> ThinkingState | None:
        state = self._live(session_id)
        if state is None:
            return None
        if self.sliding_expiration and self.ttl:
            self._entries[session_id] = (state, self._expiry())
        return state.model_copy(deep=True)

    async def set(self, state: ThinkingState) -> None:
        self._entries[state.session_id] = (state.model_copy(deep=True), self._expiry())

    async def remove(self, session_id: str) -> bool:
        return self._entries.pop(session_id, None) is not None

    async def exists(self, session_id: str) -> bool:
        return self._live(session_id) is not None

    def cleanup_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [sid for sid, (_, exp) in self._entries.items() if exp is not None and exp <= now]
        for sid in expired:
            del self._entries[sid]
        if expired:
            logger.info("Removed %d expired thinking states", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
