"""Pydantic DTOs for the turn completion engine.

These models define the data contract between the engine, its
components (classifier, extractors, repairer) and its callers.
Runtime-only objects that wrap transport payloads live in
turnkeeper.transport as dataclasses.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class BudgetConfig(BaseModel):
    """Ceilings for one turn. max_continuations=0 means single-shot."""

    thinking_budget: int = Field(4096, gt=0)
    answer_budget: int = Field(4096, gt=0)
    max_continuations: int = Field(5, ge=0)
    max_duration: timedelta = timedelta(minutes=10)
    min_progress_tokens: int = Field(100, ge=0)

    @model_validator(mode="after")
    def _validate_duration(self) -> BudgetConfig:
        if self.max_duration <= timedelta(0):
            raise ValueError("max_duration must be positive")
        return self


class ProgressMode(StrEnum):
    """Which tokens count as progress for the anti-stall guard."""

    BOTH = "both"
    ANSWER = "answer"
    THINKING = "thinking"


class ContinuationConfig(BaseModel):
    """How continuation requests are built and how partial content is recovered."""

    prompt: str = "Please continue from where you left off."
    include_previous_response: bool = True
    delay_seconds: float = Field(0.0, ge=0.0)
    enable_json_recovery: bool = True
    enable_code_block_recovery: bool = True
    progress_mode: ProgressMode = ProgressMode.BOTH


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------


class TruncationReason(StrEnum):
    NONE = "none"
    TOKEN_LIMIT = "token_limit"
    UNBALANCED_STRUCTURE = "unbalanced_structure"
    INCOMPLETE_CODE_BLOCK = "incomplete_code_block"
    MID_SENTENCE = "mid_sentence"
    CONTENT_FILTERED = "content_filtered"
    RECITATION = "recitation"
    REFUSAL = "refusal"
    CONTEXT_WINDOW_EXCEEDED = "context_window_exceeded"

    @property
    def is_terminal(self) -> bool:
        """Terminal reasons are never retried."""
        return self in _TERMINAL_REASONS


_TERMINAL_REASONS = frozenset(
    {
        TruncationReason.CONTENT_FILTERED,
        TruncationReason.RECITATION,
        TruncationReason.REFUSAL,
        TruncationReason.CONTEXT_WINDOW_EXCEEDED,
    }
)


class TruncationInfo(BaseModel):
    """Result of classifying one physical response."""

    model_config = ConfigDict(frozen=True)

    is_truncated: bool
    reason: TruncationReason = TruncationReason.NONE
    details: str | None = None

    @model_validator(mode="after")
    def _reason_matches_flag(self) -> TruncationInfo:
        if self.is_truncated == (self.reason == TruncationReason.NONE):
            raise ValueError("reason must be NONE exactly when is_truncated is false")
        return self

    @classmethod
    def not_truncated(cls) -> TruncationInfo:
        return cls(is_truncated=False)

    @classmethod
    def truncated(cls, reason: TruncationReason, details: str | None = None) -> TruncationInfo:
        return cls(is_truncated=True, reason=reason, details=details)

    @property
    def is_terminal(self) -> bool:
        return self.reason.is_terminal


# ---------------------------------------------------------------------------
# Reasoning
# ---------------------------------------------------------------------------


class ThinkingContent(BaseModel):
    """Reasoning trace extracted from one physical response."""

    text: str
    token_count: int = Field(0, ge=0)
    is_summarized: bool = False


class ReasoningState(BaseModel):
    """Provider-owned continuation token. The bytes are never inspected here."""

    model_config = ConfigDict(frozen=True, ser_json_bytes="base64", val_json_bytes="base64")

    provider: str
    opaque_data: bytes
    captured_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ThinkingState(BaseModel):
    """Session-scoped accumulation across turns. Written only by the engine."""

    session_id: str
    model_id: str | None = None
    reasoning_state: ReasoningState | None = None
    total_thinking_tokens: int = 0
    total_output_tokens: int = 0
    continuation_count: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# ---------------------------------------------------------------------------
# Turn outcome
# ---------------------------------------------------------------------------


class TaskComplexity(StrEnum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    RESEARCH = "research"


class TurnState(StrEnum):
    PENDING = "pending"
    AWAITING_RESPONSE = "awaiting_response"
    CLASSIFYING = "classifying"
    CONTINUING = "continuing"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


class TurnStatus(StrEnum):
    SUCCESS = "success"
    TRUNCATED = "truncated"
    FAILED = "failed"


class ExhaustionCause(StrEnum):
    MAX_CONTINUATIONS = "max_continuations"
    DEADLINE = "deadline"
    NO_PROGRESS = "no_progress"
    CANCELLED = "cancelled"


class TurnMetrics(BaseModel):
    """Accumulated counters for one turn. Read-only to the caller."""

    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    thinking_tokens: int = 0
    output_tokens: int = 0
    continuation_count: int = 0
    physical_requests: int = 0
    duration: timedelta = timedelta(0)
    detected_complexity: TaskComplexity | None = None
    thinking_budget_exceeded: bool = False
    answer_budget_exceeded: bool = False

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.thinking_tokens + self.output_tokens


class RoundRecord(BaseModel):
    """What one physical request produced."""

    index: int
    finish_reason: str | None = None
    truncation: TruncationInfo
    thinking: ThinkingContent | None = None
    thinking_tokens: int = 0
    answer_tokens: int = 0

    @property
    def new_tokens(self) -> int:
        return self.thinking_tokens + self.answer_tokens
