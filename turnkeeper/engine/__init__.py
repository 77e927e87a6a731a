"""Turn completion engine and its chat-client decorator."""

from turnkeeper.engine.client import ThinkingClient
from turnkeeper.engine.complexity import HeuristicComplexityEstimator
from turnkeeper.engine.turn_engine import TurnEngine, TurnResult

__all__ = [
    "HeuristicComplexityEstimator",
    "ThinkingClient",
    "TurnEngine",
    "TurnResult",
]
