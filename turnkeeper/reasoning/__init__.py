"""Provider reasoning extractors.

Four families share one contract (try_parse / extract_state):
signed blocks (Anthropic), fields (OpenAI), signatures (Gemini)
and inline tags (open models).
"""

from turnkeeper.reasoning.anthropic import AnthropicExtractor
from turnkeeper.reasoning.base import NullReasoningExtractor, ReasoningExtractor
from turnkeeper.reasoning.gemini import GeminiExtractor
from turnkeeper.reasoning.openai import OpenAIExtractor
from turnkeeper.reasoning.registry import ExtractorRegistry, default_registry
from turnkeeper.reasoning.tagged import TaggedExtractor, split_reasoning

__all__ = [
    "AnthropicExtractor",
    "ExtractorRegistry",
    "GeminiExtractor",
    "NullReasoningExtractor",
    "OpenAIExtractor",
    "ReasoningExtractor",
    "TaggedExtractor",
    "default_registry",
    "split_reasoning",
]
