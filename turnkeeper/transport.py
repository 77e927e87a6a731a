"""Boundary types shared with the chat transport.

The engine never opens connections. It hands a TurnRequest to a
caller-supplied transport and reads back a ChatResponse exposing a
finish reason, content segments, an optional raw payload and optional
usage counters.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from turnkeeper.schemas import BudgetConfig, ReasoningState


@dataclass(frozen=True)
class Message:
    """A single conversation message."""

    role: str  # "system", "user" or "assistant"
    content: str


@dataclass
class Usage:
    """Provider-reported token counts. Any field may be missing."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    reasoning_tokens: int | None = None


@dataclass
class ChatResponse:
    """One physical response from the transport."""

    content: list[str] = field(default_factory=list)
    finish_reason: str | None = None
    raw: Any = None
    usage: Usage | None = None
    model_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "".join(self.content)


@dataclass(frozen=True)
class TurnRequest:
    """One physical request. Continuations are derived, never mutated in place."""

    messages: tuple[Message, ...]
    budget: BudgetConfig | None = None  # None: the engine default
    provider: str | None = None
    model_id: str | None = None
    session_id: str | None = None
    reasoning_state: ReasoningState | None = None
    continuation_index: int = 0

    def continue_with(
        self,
        messages: tuple[Message, ...],
        reasoning_state: ReasoningState | None,
    ) -> TurnRequest:
        """Derive the next continuation request."""
        return replace(
            self,
            messages=messages,
            reasoning_state=reasoning_state,
            continuation_index=self.continuation_index + 1,
        )


@runtime_checkable
class ChatTransport(Protocol):
    """Send a conversation, receive a response."""

    async def send(self, request: TurnRequest) -> ChatResponse: ...


SendFn = Callable[[TurnRequest], Awaitable[ChatResponse]]
