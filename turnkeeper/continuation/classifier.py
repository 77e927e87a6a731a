"""Truncation classifier: assigns one TruncationReason to a physical response.

Priority order:
1. Explicit safety/filter signal  -> ContentFiltered / Recitation / Refusal (terminal)
2. Explicit context-window signal -> ContextWindowExceeded (terminal)
3. Explicit length signal         -> TokenLimit (recoverable)
4. Explicit completion signal     -> not truncated
5. No recognised signal           -> structural, then mid-sentence heuristics

Finish reasons are read from the transport first and from well-known
fields of the raw payload second. Matching is case-insensitive.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from turnkeeper.schemas import TruncationInfo, TruncationReason
from turnkeeper.transport import ChatResponse

logger = logging.getLogger(__name__)

_SIGNALS: dict[str, TruncationReason] = {
    # OpenAI: content_filter, Gemini: SAFETY / blockReason values
    "content_filter": TruncationReason.CONTENT_FILTERED,
    "safety": TruncationReason.CONTENT_FILTERED,
    "blocklist": TruncationReason.CONTENT_FILTERED,
    "prohibited_content": TruncationReason.CONTENT_FILTERED,
    "spii": TruncationReason.CONTENT_FILTERED,
    "recitation": TruncationReason.RECITATION,
    "refusal": TruncationReason.REFUSAL,
    "model_context_window_exceeded": TruncationReason.CONTEXT_WINDOW_EXCEEDED,
    "context_length_exceeded": TruncationReason.CONTEXT_WINDOW_EXCEEDED,
    # OpenAI: length, Anthropic: max_tokens, Gemini: MAX_TOKENS,
    # Responses API: max_output_tokens
    "length": TruncationReason.TOKEN_LIMIT,
    "max_tokens": TruncationReason.TOKEN_LIMIT,
    "max_output_tokens": TruncationReason.TOKEN_LIMIT,
}

_COMPLETED = frozenset(
    {
        "stop",
        "end_turn",
        "stop_sequence",
        "tool_use",
        "tool_calls",
        "function_call",
        "pause_turn",
        "completed",
    }
)

_FENCE = re.compile(r"^```[\w+#-]*\s*$", re.MULTILINE)
_SENTENCE_END = re.compile(r"[.!?。、！？]\s*$")
# Endings that look deliberate: list markers, headers, closers, labels.
_NEUTRAL_ENDINGS = frozenset(":-*#}])`\"'>|")


@dataclass(frozen=True)
class ClassifierOptions:
    enable_structural_analysis: bool = True
    enable_heuristic_analysis: bool = True
    min_text_length_for_heuristics: int = 100


def raw_finish_reason(raw: Any) -> str | None:
    """Dig a vendor finish reason out of a raw response payload."""
    if not isinstance(raw, dict):
        return None
    for key in ("stop_reason", "finish_reason", "finishReason"):
        value = raw.get(key)
        if isinstance(value, str) and value:
            return value
    for key, field_name in (("candidates", "finishReason"), ("choices", "finish_reason")):
        items = raw.get(key)
        if isinstance(items, list) and items and isinstance(items[0], dict):
            value = items[0].get(field_name)
            if isinstance(value, str) and value:
                return value
    details = raw.get("incomplete_details")
    if isinstance(details, dict) and isinstance(details.get("reason"), str):
        return details["reason"]
    feedback = raw.get("promptFeedback")
    if isinstance(feedback, dict) and isinstance(feedback.get("blockReason"), str):
        return feedback["blockReason"]
    return None


def finish_signal(response: ChatResponse) -> str | None:
    return response.finish_reason or raw_finish_reason(response.raw)


class TruncationClassifier:
    """Pure function of its input; safe to share across turns."""

    def __init__(self, options: ClassifierOptions | None = None):
        self.options = options or ClassifierOptions()

    def classify(self, response: ChatResponse | None, text: str | None = None) -> TruncationInfo:
        """Classify a response. ``text`` overrides the response text for heuristics."""
        if response is None:
            return TruncationInfo.not_truncated()

        signal = finish_signal(response)
        if signal:
            key = signal.strip().lower()
            reason = _SIGNALS.get(key)
            if reason is not None:
                return TruncationInfo.truncated(reason, f"finish reason: {signal}")
            if key in _COMPLETED:
                return TruncationInfo.not_truncated()
            logger.debug("Unrecognised finish reason %r, falling back to heuristics", signal)

        return self.classify_text(response.text if text is None else text)

    def completion_signalled(self, response: ChatResponse) -> bool:
        """The provider explicitly reported a normal finish."""
        signal = finish_signal(response)
        return bool(signal) and signal.strip().lower() in _COMPLETED

    def classify_text(self, text: str | None) -> TruncationInfo:
        """Structural and heuristic checks only."""
        if not text:
            return TruncationInfo.not_truncated()
        if self.options.enable_structural_analysis:
            info = check_unbalanced(text) or check_code_fence(text)
            if info is not None:
                return info
        if self.options.enable_heuristic_analysis:
            info = self._check_mid_sentence(text)
            if info is not None:
                return info
        return TruncationInfo.not_truncated()

    def _check_mid_sentence(self, text: str) -> TruncationInfo | None:
        if len(text) < self.options.min_text_length_for_heuristics:
            return None
        trimmed = text.rstrip()
        if not trimmed or trimmed.endswith("```"):
            return None
        if _SENTENCE_END.search(trimmed) or trimmed[-1] in _NEUTRAL_ENDINGS:
            return None
        return TruncationInfo.truncated(TruncationReason.MID_SENTENCE, "ends mid-sentence")


def check_unbalanced(text: str) -> TruncationInfo | None:
    """Unclosed ``{`` or ``[`` outside double-quoted strings."""
    braces = brackets = 0
    in_string = escaped = False
    for ch in text:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif in_string:
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            braces += 1
        elif ch == "}":
            braces -= 1
        elif ch == "[":
            brackets += 1
        elif ch == "]":
            brackets -= 1

    if braces <= 0 and brackets <= 0:
        return None
    parts = []
    if braces > 0:
        parts.append(f"{braces} unclosed '{{'")
    if brackets > 0:
        parts.append(f"{brackets} unclosed '['")
    return TruncationInfo.truncated(TruncationReason.UNBALANCED_STRUCTURE, ", ".join(parts))


def check_code_fence(text: str) -> TruncationInfo | None:
    """Each fence line toggles; an odd count means an open block."""
    if len(_FENCE.findall(text)) % 2 == 1:
        return TruncationInfo.truncated(TruncationReason.INCOMPLETE_CODE_BLOCK, "unclosed code fence")
    return None
