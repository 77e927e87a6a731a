"""Field reasoning (OpenAI Responses and chat-completions style).

Responses API: ``output[]`` carries ``reasoning`` items with a
``summary[]`` of text parts and an ``encrypted_content`` token, which is
the opaque state. Chat-completions compatible servers put the reasoning
text directly on ``choices[0].message.reasoning_content``.
"""

from __future__ import annotations

import logging
from typing import Any

from turnkeeper.reasoning.base import ReasoningExtractor, as_int, dig, raw_payload
from turnkeeper.schemas import ReasoningState, ThinkingContent
from turnkeeper.transport import ChatResponse

logger = logging.getLogger(__name__)

ENCRYPTED_PLACEHOLDER = "[Reasoning content encrypted]"


def _reasoning_items(raw: Any) -> list[dict]:
    output = dig(raw, "output")
    if not isinstance(output, list):
        return []
    return [item for item in output if isinstance(item, dict) and item.get("type") == "reasoning"]


def _summary_text(item: dict) -> list[str]:
    texts = []
    for part in item.get("summary") or []:
        if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"]:
            texts.append(part["text"])
        elif isinstance(part, str) and part:
            texts.append(part)
    return texts


def reasoning_field(raw: Any) -> str | None:
    """``reasoning_content`` or ``reasoning`` from a chat-completions payload."""
    for path in (
        ("choices", 0, "message", "reasoning_content"),
        ("choices", 0, "message", "reasoning"),
        ("reasoning_content",),
    ):
        value = dig(raw, *path)
        if isinstance(value, str) and value:
            return value
    return None


def reasoning_token_count(raw: Any) -> int | None:
    return as_int(dig(raw, "usage", "output_tokens_details", "reasoning_tokens")) or as_int(
        dig(raw, "usage", "completion_tokens_details", "reasoning_tokens")
    )


class OpenAIExtractor(ReasoningExtractor):
    provider = "openai"

    def try_parse(self, response: ChatResponse) -> ThinkingContent | None:
        raw = raw_payload(response)
        tokens = reasoning_token_count(raw) or 0

        items = _reasoning_items(raw)
        if items:
            texts = [t for item in items for t in _summary_text(item)]
            if texts:
                return ThinkingContent(text="\n".join(texts), token_count=tokens, is_summarized=True)
            if any(item.get("encrypted_content") for item in items):
                return ThinkingContent(text=ENCRYPTED_PLACEHOLDER, token_count=tokens, is_summarized=True)

        field_text = reasoning_field(raw)
        if field_text:
            return ThinkingContent(text=field_text, token_count=tokens, is_summarized=False)
        return None

    def extract_state(self, response: ChatResponse) -> ReasoningState | None:
        # Only the most recent encrypted token is valid for the next request.
        for item in reversed(_reasoning_items(raw_payload(response))):
            token = item.get("encrypted_content")
            if isinstance(token, str) and token:
                return self._state(token.encode("utf-8"))
        return None

    @staticmethod
    def restore_encrypted_content(state: ReasoningState | None) -> str | None:
        if state is None or state.provider != OpenAIExtractor.provider or not state.opaque_data:
            return None
        try:
            return state.opaque_data.decode("utf-8")
        except UnicodeDecodeError:
            return None
