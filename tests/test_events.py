"""Tests for the telemetry EventBus: dispatch, isolation, backpressure, drain."""

from __future__ import annotations

import asyncio

import pytest

from turnkeeper.events import TURN_COMPLETED, TURN_CONTINUATION, Event, EventBus


def _make_event(event_type: str = TURN_COMPLETED, data: dict | None = None) -> Event:
    return Event(type=event_type, data=data or {}, session_id="sess-1")


class TestEventBus:
    @pytest.mark.asyncio
    async def test_handler_receives_event(self):
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        bus.on(TURN_COMPLETED, handler)
        await bus.start()
        try:
            await bus.emit(_make_event(data={"thinking_tokens": 12}))
            await asyncio.sleep(0.1)
            assert len(received) == 1
            assert received[0].data["thinking_tokens"] == 12
            assert received[0].session_id == "sess-1"
        finally:
            await bus.stop()

    @pytest.mark.asyncio
    async def test_handlers_only_see_their_type(self):
        bus = EventBus()
        seen: list[str] = []

        async def on_done(event: Event) -> None:
            seen.append("done")

        bus.on(TURN_COMPLETED, on_done)
        await bus.emit(_make_event(TURN_CONTINUATION))
        await bus.emit(_make_event(TURN_COMPLETED))
        await bus.drain()
        assert seen == ["done"]

    @pytest.mark.asyncio
    async def test_on_any_sees_everything(self):
        bus = EventBus()
        types: list[str] = []

        async def spy(event: Event) -> None:
            types.append(event.type)

        bus.on_any(spy)
        await bus.emit(_make_event(TURN_CONTINUATION))
        await bus.emit(_make_event(TURN_COMPLETED))
        await bus.drain()
        assert types == [TURN_CONTINUATION, TURN_COMPLETED]

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self):
        bus = EventBus()
        results: list[str] = []

        async def broken(event: Event) -> None:
            raise RuntimeError("sink down")

        async def healthy(event: Event) -> None:
            results.append("ok")

        bus.on(TURN_COMPLETED, broken)
        bus.on(TURN_COMPLETED, healthy)
        await bus.emit(_make_event())
        await bus.drain()
        assert results == ["ok"]

    @pytest.mark.asyncio
    async def test_full_queue_drops_without_blocking(self):
        bus = EventBus(max_queue=2)
        for _ in range(5):
            await bus.emit(_make_event())
        assert bus.pending == 2

    @pytest.mark.asyncio
    async def test_stop_drains_pending(self):
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        bus.on(TURN_COMPLETED, handler)
        await bus.emit(_make_event())
        await bus.emit(_make_event())
        await bus.stop()
        assert len(received) == 2
        assert bus.pending == 0

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        bus = EventBus()
        await bus.start()
        task = bus._task
        await bus.start()
        assert bus._task is task
        await bus.stop()

    @pytest.mark.asyncio
    async def test_dropped_and_failed_events_are_logged(self, caplog):
        bus = EventBus(max_queue=1)

        async def broken(event: Event) -> None:
            raise RuntimeError("sink down")

        bus.on(TURN_COMPLETED, broken)
        with caplog.at_level("WARNING", logger="turnkeeper.events"):
            await bus.emit(_make_event())
            await bus.emit(_make_event())
            await bus.drain()
        messages = [r.getMessage() for r in caplog.records]
        assert any("dropped turn_completed for session sess-1" in m for m in messages)
        assert any("broken failed on turn_completed" in m for m in messages)
