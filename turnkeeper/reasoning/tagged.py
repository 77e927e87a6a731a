"""Tag-delimited reasoning (DeepSeek-R1, QwQ, Qwen3 and other open models).

Reasoning is inline in the answer between a start/end delimiter pair,
``<think>`` and ``</think>`` by default. Chat templates sometimes inject
the opening tag into the prompt, so output may begin with reasoning and
only contain the closing tag. A response truncated mid-reasoning has an
opening tag and no closing one.

Servers that already split reasoning out (``reasoning_content``) are
read directly. This family is stateless: nothing to echo back.
"""

from __future__ import annotations

from dataclasses import dataclass

from turnkeeper.reasoning.base import ReasoningExtractor, raw_payload
from turnkeeper.reasoning.openai import reasoning_field, reasoning_token_count
from turnkeeper.schemas import ReasoningState, ThinkingContent
from turnkeeper.transport import ChatResponse


@dataclass(frozen=True)
class SplitText:
    reasoning: list[str]
    answer: str
    open_span: bool = False  # text ended inside a reasoning span


def split_reasoning(text: str, start_tag: str = "<think>", end_tag: str = "</think>") -> SplitText:
    """Separate delimited spans from the answer text."""
    reasoning: list[str] = []
    answer: list[str] = []
    pos = 0
    open_span = False

    first_end = text.find(end_tag)
    first_start = text.find(start_tag)
    if first_end != -1 and (first_start == -1 or first_end < first_start):
        # Opening tag lives in the prompt template.
        reasoning.append(text[:first_end].strip())
        pos = first_end + len(end_tag)

    while True:
        start = text.find(start_tag, pos)
        if start == -1:
            answer.append(text[pos:])
            break
        answer.append(text[pos:start])
        body_start = start + len(start_tag)
        end = text.find(end_tag, body_start)
        if end == -1:
            # Cut off mid-reasoning.
            reasoning.append(text[body_start:].strip())
            open_span = True
            break
        reasoning.append(text[body_start:end].strip())
        pos = end + len(end_tag)

    joined = "".join(answer)
    if reasoning:
        joined = joined.lstrip()
    return SplitText([r for r in reasoning if r], joined, open_span)


class TaggedExtractor(ReasoningExtractor):
    provider = "opensource"

    def __init__(self, start_tag: str = "<think>", end_tag: str = "</think>"):
        if not start_tag or not end_tag:
            raise ValueError("start_tag and end_tag must be non-empty")
        self.start_tag = start_tag
        self.end_tag = end_tag

    def try_parse(self, response: ChatResponse) -> ThinkingContent | None:
        raw = raw_payload(response)
        tokens = reasoning_token_count(raw) or 0

        field_text = reasoning_field(raw)
        if field_text:
            return ThinkingContent(text=field_text, token_count=tokens, is_summarized=False)

        split = split_reasoning(response.text, self.start_tag, self.end_tag)
        if not split.reasoning:
            return None
        return ThinkingContent(text="\n\n".join(split.reasoning), token_count=tokens, is_summarized=False)

    def extract_state(self, response: ChatResponse) -> ReasoningState | None:
        return None

    def answer_text(self, response: ChatResponse) -> str:
        return split_reasoning(response.text, self.start_tag, self.end_tag).answer

    def open_reasoning(self, response: ChatResponse) -> bool:
        return split_reasoning(response.text, self.start_tag, self.end_tag).open_span
