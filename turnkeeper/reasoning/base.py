"""Reasoning extractor contract and raw-payload helpers.

Each provider family implements the same two operations:

- try_parse(response)     -> ThinkingContent | None
- extract_state(response) -> ReasoningState | None

Absence of a reasoning payload is not an error. Malformed pieces of a
payload are skipped individually; partial reasoning beats none.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from turnkeeper.schemas import ReasoningState, ThinkingContent
from turnkeeper.transport import ChatResponse

logger = logging.getLogger(__name__)


def raw_payload(response: ChatResponse) -> Any:
    """Raw response as plain dicts/lists.

    SDK objects exposing pydantic's ``model_dump()`` are converted;
    anything else is returned as-is.
    """
    raw = response.raw
    if raw is None:
        return None
    dump = getattr(raw, "model_dump", None)
    if callable(dump):
        return dump()
    return raw


def dig(obj: Any, *path: str | int) -> Any:
    """Nested lookup through dicts and lists. Missing steps yield None."""
    for step in path:
        if isinstance(step, int):
            if not isinstance(obj, list) or not -len(obj) <= step < len(obj):
                return None
            obj = obj[step]
        else:
            if not isinstance(obj, dict):
                return None
            obj = obj.get(step)
        if obj is None:
            return None
    return obj


def as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    return None


class ReasoningExtractor(ABC):
    """One provider family's view of reasoning payloads."""

    provider: str = ""

    @abstractmethod
    def try_parse(self, response: ChatResponse) -> ThinkingContent | None: ...

    @abstractmethod
    def extract_state(self, response: ChatResponse) -> ReasoningState | None: ...

    def answer_text(self, response: ChatResponse) -> str:
        """Answer text with any inline reasoning removed."""
        return response.text

    def open_reasoning(self, response: ChatResponse) -> bool:
        """True when the response stopped inside inline reasoning."""
        return False

    def _state(self, data: bytes) -> ReasoningState:
        return ReasoningState(provider=self.provider, opaque_data=data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider={self.provider!r})"


class NullReasoningExtractor(ReasoningExtractor):
    """Used when no provider family matches. Extracts nothing."""

    provider = "none"

    def try_parse(self, response: ChatResponse) -> ThinkingContent | None:
        return None

    def extract_state(self, response: ChatResponse) -> ReasoningState | None:
        return None
