"""turnkeeper: turn completion for reasoning-capable LLM endpoints.

Wraps a chat transport so one logical turn survives truncation:
classify each response, carry provider reasoning state forward, continue
within budget, and repair whatever is left incomplete.
"""

from turnkeeper.config import Settings, configure_logging
from turnkeeper.continuation import ContentRepairer, RepairResult, TruncationClassifier
from turnkeeper.engine import HeuristicComplexityEstimator, ThinkingClient, TurnEngine, TurnResult
from turnkeeper.errors import SessionBusyError, TurnCancelledError, TurnConfigurationError
from turnkeeper.events import Event, EventBus
from turnkeeper.reasoning import ExtractorRegistry, ReasoningExtractor, default_registry
from turnkeeper.schemas import (
    BudgetConfig,
    ContinuationConfig,
    ExhaustionCause,
    ProgressMode,
    ReasoningState,
    TaskComplexity,
    ThinkingContent,
    ThinkingState,
    TruncationInfo,
    TruncationReason,
    TurnMetrics,
    TurnState,
    TurnStatus,
)
from turnkeeper.storage import InMemoryThinkingStateStore, SessionGuard, SqlThinkingStateStore
from turnkeeper.tokens import TokenEstimator
from turnkeeper.transport import ChatResponse, ChatTransport, Message, TurnRequest, Usage

__all__ = [
    "BudgetConfig",
    "ChatResponse",
    "ChatTransport",
    "ContentRepairer",
    "ContinuationConfig",
    "Event",
    "EventBus",
    "ExhaustionCause",
    "ExtractorRegistry",
    "HeuristicComplexityEstimator",
    "InMemoryThinkingStateStore",
    "Message",
    "ProgressMode",
    "ReasoningExtractor",
    "ReasoningState",
    "RepairResult",
    "SessionBusyError",
    "SessionGuard",
    "Settings",
    "SqlThinkingStateStore",
    "TaskComplexity",
    "ThinkingClient",
    "ThinkingContent",
    "ThinkingState",
    "TokenEstimator",
    "TruncationClassifier",
    "TruncationInfo",
    "TruncationReason",
    "TurnCancelledError",
    "TurnConfigurationError",
    "TurnEngine",
    "TurnMetrics",
    "TurnRequest",
    "TurnResult",
    "TurnState",
    "TurnStatus",
    "Usage",
    "configure_logging",
    "default_registry",
]
