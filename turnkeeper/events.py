"""Turn telemetry events.

TurnEngine publishes ``turn_continuation`` after every continued round
and ``turn_completed`` once per turn, cancelled turns included. Sinks
subscribe on an EventBus; the engine only enqueues, so a slow or broken
sink never delays or fails a turn.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

TURN_COMPLETED = "turn_completed"
TURN_CONTINUATION = "turn_continuation"

EventHandler = Callable[["Event"], Awaitable[None]]


@dataclass
class Event:
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventBus:
    """Bounded queue of turn events fanned out to async sinks.

    Without start() events just accumulate until drain() or stop().
    """

    def __init__(self, max_queue: int = 1000):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._any_handlers: list[EventHandler] = []
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue)
        self._task: asyncio.Task | None = None

    def on(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def on_any(self, handler: EventHandler) -> None:
        self._any_handlers.append(handler)

    async def emit(self, event: Event) -> None:
        """Enqueue without waiting. A full queue drops the event."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Telemetry queue full, dropped %s for session %s", event.type, event.session_id)

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="turnkeeper-events")

    async def stop(self) -> None:
        """Stop the background task, then deliver what is still queued."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.drain()

    async def drain(self) -> None:
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._dispatch(event)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            await self._dispatch(event)

    async def _dispatch(self, event: Event) -> None:
        handlers = [*self._handlers.get(event.type, ()), *self._any_handlers]
        if handlers:
            await asyncio.gather(*(self._deliver(h, event) for h in handlers))

    async def _deliver(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Telemetry sink %s failed on %s", getattr(handler, "__qualname__", handler), event.type)

    @property
    def pending(self) -> int:
        return self._queue.qsize()
