"""Extractor selection by provider id, then model-id prefix.

New providers are added by registering an extractor; the engine never
changes.
"""

from __future__ import annotations

import logging

from turnkeeper.reasoning.anthropic import AnthropicExtractor
from turnkeeper.reasoning.base import NullReasoningExtractor, ReasoningExtractor
from turnkeeper.reasoning.gemini import GeminiExtractor
from turnkeeper.reasoning.openai import OpenAIExtractor
from turnkeeper.reasoning.tagged import TaggedExtractor

logger = logging.getLogger(__name__)


class ExtractorRegistry:
    def __init__(self, default: ReasoningExtractor | None = None):
        self._by_provider: dict[str, ReasoningExtractor] = {}
        self._prefixes: list[tuple[str, ReasoningExtractor]] = []
        self.default = default or NullReasoningExtractor()

    def register(
        self,
        extractor: ReasoningExtractor,
        *,
        aliases: tuple[str, ...] = (),
        model_prefixes: tuple[str, ...] = (),
    ) -> None:
        for name in (extractor.provider, *aliases):
            self._by_provider[name.lower()] = extractor
        for prefix in model_prefixes:
            self._prefixes.append((prefix.lower(), extractor))
        # Longest prefix wins.
        self._prefixes.sort(key=lambda item: len(item[0]), reverse=True)

    def get(self, provider: str) -> ReasoningExtractor | None:
        return self._by_provider.get(provider.lower())

    def resolve(self, provider: str | None = None, model_id: str | None = None) -> ReasoningExtractor:
        if provider:
            found = self.get(provider)
            if found is not None:
                return found
            logger.debug("No extractor registered for provider %r", provider)
        if model_id:
            model = model_id.lower()
            for prefix, extractor in self._prefixes:
                if model.startswith(prefix):
                    return extractor
        return self.default

    @property
    def providers(self) -> list[str]:
        return sorted(self._by_provider)


def default_registry() -> ExtractorRegistry:
    registry = ExtractorRegistry()
    registry.register(OpenAIExtractor(), model_prefixes=("gpt-", "o1", "o3", "o4"))
    registry.register(AnthropicExtractor(), aliases=("claude",), model_prefixes=("claude",))
    registry.register(GeminiExtractor(), aliases=("google",), model_prefixes=("gemini", "models/gemini"))
    registry.register(
        TaggedExtractor(),
        aliases=("tagged", "deepseek", "qwen", "vllm"),
        model_prefixes=("deepseek", "qwen", "qwq", "glm"),
    )
    return registry
