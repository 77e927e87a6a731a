"""Chat-client decorator.

ThinkingClient wraps any ChatTransport and is itself one: callers keep
sending a TurnRequest and get a ChatResponse back, but every call runs a
full turn (continuation, reasoning carry-over, repair) underneath. The
TurnResult, metrics and per-round thinking ride along in metadata.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Iterable

from turnkeeper.engine.turn_engine import TurnEngine, TurnResult
from turnkeeper.schemas import BudgetConfig, TaskComplexity
from turnkeeper.transport import ChatResponse, ChatTransport, Message, TurnRequest

logger = logging.getLogger(__name__)

METADATA_TURN_RESULT = "turnkeeper.turn_result"
METADATA_METRICS = "turnkeeper.metrics"
METADATA_THINKING = "turnkeeper.thinking"
METADATA_STATUS = "turnkeeper.status"


class ThinkingClient:
    def __init__(
        self,
        inner: ChatTransport,
        engine: TurnEngine | None = None,
        *,
        provider: str | None = None,
        auto_session_id: bool = False,
    ):
        self.inner = inner
        self.engine = engine or TurnEngine()
        self.provider = provider
        self.auto_session_id = auto_session_id

    async def run(self, request: TurnRequest, *, complexity: TaskComplexity | None = None) -> TurnResult:
        """Run a turn and return the full result."""
        if request.provider is None and self.provider is not None:
            request = replace(request, provider=self.provider)
        if request.session_id is None and self.auto_session_id:
            request = replace(request, session_id=uuid.uuid4().hex)
            logger.debug("Assigned session id %s", request.session_id)
        return await self.engine.run_turn(request, self.inner.send, complexity=complexity)

    async def send(self, request: TurnRequest) -> ChatResponse:
        result = await self.run(request)
        response = result.response
        response.metadata[METADATA_TURN_RESULT] = result
        response.metadata[METADATA_METRICS] = result.metrics
        response.metadata[METADATA_THINKING] = result.thinking
        response.metadata[METADATA_STATUS] = result.status
        return response

    async def ask(
        self,
        messages: str | Iterable[Message],
        *,
        model_id: str | None = None,
        session_id: str | None = None,
        budget: BudgetConfig | None = None,
    ) -> TurnResult:
        """Convenience wrapper building the TurnRequest."""
        if isinstance(messages, str):
            messages = [Message("user", messages)]
        request = TurnRequest(
            messages=tuple(messages),
            budget=budget,
            provider=self.provider,
            model_id=model_id,
            session_id=session_id,
        )
        return await self.run(request)
