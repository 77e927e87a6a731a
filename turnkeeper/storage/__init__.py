"""ThinkingState persistence."""

from turnkeeper.storage.base import SessionGuard, ThinkingStateStore
from turnkeeper.storage.memory import InMemoryThinkingStateStore
from turnkeeper.storage.sql import SqlThinkingStateStore

__all__ = [
    "InMemoryThinkingStateStore",
    "SessionGuard",
    "SqlThinkingStateStore",
    "ThinkingStateStore",
]
