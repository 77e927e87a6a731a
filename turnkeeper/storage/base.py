"""ThinkingState store contract and per-session exclusivity."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal, Protocol, runtime_checkable

from turnkeeper.errors import SessionBusyError
from turnkeeper.schemas import ThinkingState

logger = logging.getLogger(__name__)

SessionPolicy = Literal["serialize", "reject"]


@runtime_checkable
class ThinkingStateStore(Protocol):
    """Session-keyed ThinkingState snapshots."""

    async def get(self, session_id: str) -> ThinkingState | None: ...

    async def set(self, state: ThinkingState) -> None: ...

    async def remove(self, session_id: str) -> bool: ...

    async def exists(self, session_id: str) -> bool: ...


class SessionGuard:
    """At most one turn per session id at a time.

    ``serialize`` queues a second turn behind the first; ``reject`` raises
    SessionBusyError instead. Locks are dropped once no turn references them.
    """

    def __init__(self, policy: SessionPolicy = "serialize"):
        if policy not in ("serialize", "reject"):
            raise ValueError(f"Unknown session policy: {policy}")
        self.policy = policy
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        if self.policy == "reject" and lock.locked():
            raise SessionBusyError(session_id)

        self._refs[session_id] = self._refs.get(session_id, 0) + 1
        try:
            if lock.locked():
                logger.debug("Session %s busy, waiting", session_id)
            async with lock:
                yield
        finally:
            self._refs[session_id] -= 1
            if self._refs[session_id] == 0:
                del self._refs[session_id]
                del self._locks[session_id]

    def is_busy(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()
