"""Signed-block reasoning (Anthropic Messages API).

The response content is an ordered list of typed blocks. ``thinking``
blocks carry text plus a signature; ``redacted_thinking`` blocks carry
only an encrypted ``data`` payload. Both must be sent back unmodified on
the next request, so the opaque state is the compact JSON of the
well-formed blocks exactly as received, in order.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from turnkeeper.reasoning.base import ReasoningExtractor, as_int, dig, raw_payload
from turnkeeper.schemas import ReasoningState, ThinkingContent
from turnkeeper.transport import ChatResponse

logger = logging.getLogger(__name__)

THINKING_SEPARATOR = "\n---\n"


def _content_blocks(raw: Any) -> list[Any]:
    if isinstance(raw, dict):
        raw = raw.get("content")
    return raw if isinstance(raw, list) else []


def _is_signed_thinking(block: dict) -> bool:
    return (
        isinstance(block.get("thinking"), str)
        and bool(block["thinking"])
        and isinstance(block.get("signature"), str)
        and bool(block["signature"])
    )


def reasoning_blocks(raw: Any) -> list[dict]:
    """Well-formed thinking and redacted blocks, in original order."""
    kept = []
    for i, block in enumerate(_content_blocks(raw)):
        if not isinstance(block, dict):
            continue
        kind = block.get("type")
        if kind == "thinking":
            if _is_signed_thinking(block):
                kept.append(block)
            else:
                logger.warning("Skipping thinking block %d: missing text or signature", i)
        elif kind == "redacted_thinking":
            if isinstance(block.get("data"), str) and block["data"]:
                kept.append(block)
            else:
                logger.warning("Skipping redacted_thinking block %d: missing data", i)
    return kept


class AnthropicExtractor(ReasoningExtractor):
    provider = "anthropic"

    def try_parse(self, response: ChatResponse) -> ThinkingContent | None:
        raw = raw_payload(response)
        texts = [b["thinking"] for b in reasoning_blocks(raw) if b.get("type") == "thinking"]
        if not texts:
            return None
        return ThinkingContent(
            text=THINKING_SEPARATOR.join(texts),
            token_count=self._token_count(raw, response),
            is_summarized=False,
        )

    def extract_state(self, response: ChatResponse) -> ReasoningState | None:
        blocks = reasoning_blocks(raw_payload(response))
        if not blocks:
            return None
        data = json.dumps(blocks, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return self._state(data)

    def has_redacted_thinking(self, response: ChatResponse) -> bool:
        return any(b.get("type") == "redacted_thinking" for b in reasoning_blocks(raw_payload(response)))

    @staticmethod
    def _token_count(raw: Any, response: ChatResponse) -> int:
        count = as_int(dig(raw, "usage", "thinking_tokens"))
        if count is None and response.usage is not None:
            count = response.usage.reasoning_tokens
        return count or 0

    @staticmethod
    def restore_blocks(state: ReasoningState | None) -> list[dict] | None:
        """Decode stored state back into content blocks for the next request."""
        if state is None or state.provider != AnthropicExtractor.provider or not state.opaque_data:
            return None
        try:
            blocks = json.loads(state.opaque_data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return None
        return blocks if isinstance(blocks, list) else None
