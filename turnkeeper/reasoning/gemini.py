"""Signature reasoning (Gemini).

Native payloads mark thought parts with ``thought: true`` and attach a
``thoughtSignature`` that must be echoed on the next request. The
OpenAI-compatible endpoint moves the signature to
``choices[].message.extra_content.google.thought_signature``.
"""

from __future__ import annotations

from typing import Any

from turnkeeper.reasoning.base import ReasoningExtractor, as_int, dig, raw_payload
from turnkeeper.reasoning.openai import reasoning_field
from turnkeeper.schemas import ReasoningState, ThinkingContent
from turnkeeper.transport import ChatResponse


def content_parts(raw: Any) -> list[dict]:
    parts: list[Any] = []
    candidates = dig(raw, "candidates")
    if isinstance(candidates, list):
        for candidate in candidates:
            found = dig(candidate, "content", "parts")
            if isinstance(found, list):
                parts.extend(found)
    else:
        found = dig(raw, "content", "parts")
        if not isinstance(found, list):
            found = dig(raw, "parts")
        if isinstance(found, list):
            parts = found
    return [p for p in parts if isinstance(p, dict)]


def _thought_text(part: dict) -> str | None:
    thought = part.get("thought")
    if thought is True and isinstance(part.get("text"), str):
        return part["text"] or None
    if isinstance(thought, str):
        return thought or None
    return None


def thought_signature(raw: Any) -> str | None:
    for part in content_parts(raw):
        sig = part.get("thoughtSignature") or part.get("thought_signature")
        if isinstance(sig, str) and sig:
            return sig
    choices = dig(raw, "choices")
    if isinstance(choices, list):
        for choice in choices:
            sig = dig(choice, "message", "extra_content", "google", "thought_signature")
            if isinstance(sig, str) and sig:
                return sig
    return None


class GeminiExtractor(ReasoningExtractor):
    provider = "gemini"

    def try_parse(self, response: ChatResponse) -> ThinkingContent | None:
        raw = raw_payload(response)
        texts = [t for t in (_thought_text(p) for p in content_parts(raw)) if t]
        if not texts:
            field_text = reasoning_field(raw)
            if not field_text:
                return None
            texts = [field_text]
        tokens = as_int(dig(raw, "usageMetadata", "thoughtsTokenCount")) or as_int(
            dig(raw, "usage", "completion_tokens_details", "reasoning_tokens")
        )
        return ThinkingContent(text="\n".join(texts), token_count=tokens or 0, is_summarized=False)

    def extract_state(self, response: ChatResponse) -> ReasoningState | None:
        sig = thought_signature(raw_payload(response))
        if not sig:
            return None
        return self._state(sig.encode("utf-8"))

    @staticmethod
    def restore_signature(state: ReasoningState | None) -> str | None:
        if state is None or state.provider != GeminiExtractor.provider or not state.opaque_data:
            return None
        try:
            return state.opaque_data.decode("utf-8")
        except UnicodeDecodeError:
            return None
