"""Tests for HeuristicComplexityEstimator."""

import pytest

from turnkeeper.engine.complexity import HeuristicComplexityEstimator
from turnkeeper.schemas import TaskComplexity
from turnkeeper.transport import Message


def _user(text: str) -> list[Message]:
    return [Message("user", text)]


@pytest.mark.parametrize(
    "text,expected",
    [
        ("hi", TaskComplexity.SIMPLE),
        ("Please debug this crash", TaskComplexity.MODERATE),
        ("Research and investigate `topic` comprehensively", TaskComplexity.RESEARCH),
        ("word " * 2100, TaskComplexity.MODERATE),
    ],
)
def test_estimate(text, expected):
    assert HeuristicComplexityEstimator().estimate(_user(text)) == expected


def test_deep_conversation_adds_weight():
    messages = [
        Message("system", "You are helpful."),
        Message("user", "hello"),
        Message("assistant", "hi"),
        Message("assistant", "anything else?"),
        Message("user", "debug the failing build"),
    ]
    assert HeuristicComplexityEstimator().estimate(messages) == TaskComplexity.COMPLEX


def test_only_latest_user_message_counts():
    messages = [
        Message("user", "Research and investigate this comprehensively"),
        Message("assistant", "Done."),
        Message("user", "thanks"),
    ]
    assert HeuristicComplexityEstimator().estimate(messages) == TaskComplexity.SIMPLE


def test_no_user_message():
    assert HeuristicComplexityEstimator().estimate([Message("system", "debug")]) == TaskComplexity.SIMPLE
    assert HeuristicComplexityEstimator().estimate([]) == TaskComplexity.SIMPLE


@pytest.mark.parametrize(
    "complexity,thinking,continuations",
    [
        (TaskComplexity.SIMPLE, 1024, 2),
        (TaskComplexity.MODERATE, 4096, 3),
        (TaskComplexity.COMPLEX, 8192, 5),
        (TaskComplexity.RESEARCH, 16384, 7),
    ],
)
def test_recommended_budget(complexity, thinking, continuations):
    budget = HeuristicComplexityEstimator.recommended_budget(complexity)
    assert budget.thinking_budget == thinking
    assert budget.max_continuations == continuations


def test_recommended_budget_is_a_copy():
    a = HeuristicComplexityEstimator.recommended_budget(TaskComplexity.SIMPLE)
    b = HeuristicComplexityEstimator.recommended_budget(TaskComplexity.SIMPLE)
    assert a == b
    assert a is not b
