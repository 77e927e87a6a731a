"""Keyword and shape heuristics for task complexity.

Scores the latest user message:
- research keywords: +4 for two or more, +2 for one
- complex keywords (debug, refactor, ...): +2
- moderate keywords (explain, summarize, ...): +1
- inline or fenced code: +1
- long message (>500 tokens): +1, short (<50 tokens): -1
- conversation deeper than 4 messages: +1

>=4 research, >=2 complex, >=1 moderate, else simple.
"""

from __future__ import annotations

import re
from typing import Sequence

from turnkeeper.schemas import BudgetConfig, TaskComplexity
from turnkeeper.tokens.estimator import TokenEstimator
from turnkeeper.transport import Message

RESEARCH_KEYWORDS = (
    "research",
    "investigate",
    "comprehensive",
    "in-depth",
    "analyze thoroughly",
    "deep dive",
    "exhaustive",
)
COMPLEX_KEYWORDS = ("debug", "fix", "refactor", "optimize", "implement", "design", "architect", "troubleshoot", "diagnose")
MODERATE_KEYWORDS = ("explain", "summarize", "describe", "compare", "list", "outline", "clarify", "review")

SHORT_MESSAGE_TOKENS = 50
LONG_MESSAGE_TOKENS = 500

_CODE = re.compile(r"```[\s\S]*?```|`[^`]+`")

_BUDGETS = {
    TaskComplexity.SIMPLE: BudgetConfig(thinking_budget=1024, answer_budget=2048, max_continuations=2),
    TaskComplexity.MODERATE: BudgetConfig(thinking_budget=4096, answer_budget=4096, max_continuations=3),
    TaskComplexity.COMPLEX: BudgetConfig(thinking_budget=8192, answer_budget=4096, max_continuations=5),
    TaskComplexity.RESEARCH: BudgetConfig(thinking_budget=16384, answer_budget=8192, max_continuations=7),
}


class HeuristicComplexityEstimator:
    def __init__(self, estimator: TokenEstimator | None = None):
        self.estimator = estimator or TokenEstimator()

    def estimate(self, messages: Sequence[Message]) -> TaskComplexity:
        user = next((m for m in reversed(messages) if m.role == "user"), None)
        if user is None:
            return TaskComplexity.SIMPLE

        score = self._score(user.content, len(messages))
        if score >= 4:
            return TaskComplexity.RESEARCH
        if score >= 2:
            return TaskComplexity.COMPLEX
        if score >= 1:
            return TaskComplexity.MODERATE
        return TaskComplexity.SIMPLE

    def _score(self, text: str, message_count: int) -> int:
        lower = text.lower()
        score = 0

        research = sum(1 for k in RESEARCH_KEYWORDS if k in lower)
        if research >= 2:
            score += 4
        elif research == 1:
            score += 2
        if any(k in lower for k in COMPLEX_KEYWORDS):
            score += 2
        if any(k in lower for k in MODERATE_KEYWORDS):
            score += 1
        if _CODE.search(text):
            score += 1

        tokens = self.estimator.count(text)
        if tokens > LONG_MESSAGE_TOKENS:
            score += 1
        elif tokens < SHORT_MESSAGE_TOKENS:
            score -= 1

        if message_count > 4:
            score += 1
        return max(0, score)

    @staticmethod
    def recommended_budget(complexity: TaskComplexity) -> BudgetConfig:
        return _BUDGETS.get(complexity, _BUDGETS[TaskComplexity.MODERATE]).model_copy()
