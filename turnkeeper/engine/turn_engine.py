"""Turn completion engine.

Drives one logical turn through as many physical requests as it takes:

    Pending -> AwaitingResponse -> Classifying -> Continuing | Completed | Exhausted | Failed
                     ^                                 |
                     +---------------------------------+

Each round classifies the response, extracts reasoning and state, and
updates the token ledger before deciding. Recoverable truncation is
continued until a guard trips, checked in this order:

1. continuation count has reached max_continuations
2. wall-clock time has reached max_duration
3. the continuation round produced fewer than min_progress_tokens

Terminal truncation (filtering, recitation, refusal, context window)
fails immediately. Exhausted and failed turns get their merged answer
structurally repaired before being returned.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Callable

from pydantic import ValidationError

from turnkeeper.config import Settings
from turnkeeper.continuation.classifier import ClassifierOptions, TruncationClassifier
from turnkeeper.continuation.repair import ContentRepairer, RepairResult
from turnkeeper.engine.complexity import HeuristicComplexityEstimator
from turnkeeper.errors import TurnCancelledError, TurnConfigurationError
from turnkeeper.events import TURN_COMPLETED, TURN_CONTINUATION, Event, EventBus
from turnkeeper.reasoning.base import ReasoningExtractor
from turnkeeper.reasoning.registry import ExtractorRegistry, default_registry
from turnkeeper.schemas import (
    BudgetConfig,
    ContinuationConfig,
    ExhaustionCause,
    ProgressMode,
    ReasoningState,
    RoundRecord,
    TaskComplexity,
    ThinkingContent,
    ThinkingState,
    TruncationInfo,
    TruncationReason,
    TurnMetrics,
    TurnState,
    TurnStatus,
)
from turnkeeper.storage.base import SessionGuard, ThinkingStateStore
from turnkeeper.storage.memory import InMemoryThinkingStateStore
from turnkeeper.storage.sql import SqlThinkingStateStore
from turnkeeper.tokens.estimator import TokenEstimator
from turnkeeper.transport import ChatResponse, Message, SendFn, TurnRequest, Usage

logger = logging.getLogger(__name__)

_STATUS = {
    TurnState.COMPLETED: TurnStatus.SUCCESS,
    TurnState.EXHAUSTED: TurnStatus.TRUNCATED,
    TurnState.FAILED: TurnStatus.FAILED,
}


@dataclass
class TurnResult:
    """Terminal output of one turn."""

    status: TurnStatus
    final_state: TurnState
    response: ChatResponse
    thinking: list[ThinkingContent]
    reasoning_state: ReasoningState | None
    metrics: TurnMetrics
    truncation: TruncationInfo | None
    exhaustion_cause: ExhaustionCause | None = None
    repair: RepairResult | None = None
    rounds: list[RoundRecord] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.response.text

    @property
    def is_success(self) -> bool:
        return self.status == TurnStatus.SUCCESS

    @property
    def is_truncated(self) -> bool:
        return self.status == TurnStatus.TRUNCATED

    @property
    def is_failed(self) -> bool:
        return self.status == TurnStatus.FAILED


@dataclass
class _Ledger:
    """Mutable per-turn bookkeeping. Never shared between turns."""

    started: float
    reasoning_state: ReasoningState | None
    state: TurnState = TurnState.PENDING
    answers: list[str] = field(default_factory=list)
    rounds: list[RoundRecord] = field(default_factory=list)
    thinking_tokens: int = 0
    answer_tokens: int = 0
    continuation_count: int = 0
    thinking_budget_exceeded: bool = False
    answer_budget_exceeded: bool = False
    last_response: ChatResponse | None = None
    truncation: TruncationInfo | None = None

    @property
    def merged_answer(self) -> str:
        return "".join(self.answers)


class TurnEngine:
    """Stateless between turns; one instance can run many turns concurrently.

    Only session-tracked turns share anything (the store), and those are
    serialized per session id by the SessionGuard.
    """

    def __init__(
        self,
        *,
        registry: ExtractorRegistry | None = None,
        classifier: TruncationClassifier | None = None,
        repairer: ContentRepairer | None = None,
        estimator: TokenEstimator | None = None,
        complexity: HeuristicComplexityEstimator | None = None,
        continuation: ContinuationConfig | None = None,
        default_budget: BudgetConfig | None = None,
        store: ThinkingStateStore | None = None,
        guard: SessionGuard | None = None,
        events: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.continuation = continuation or ContinuationConfig()
        self.registry = registry or default_registry()
        self.classifier = classifier or TruncationClassifier()
        self.repairer = repairer or ContentRepairer(
            enable_json=self.continuation.enable_json_recovery,
            enable_code_blocks=self.continuation.enable_code_block_recovery,
        )
        self.estimator = estimator or TokenEstimator()
        self.complexity = complexity or HeuristicComplexityEstimator(self.estimator)
        self.default_budget = default_budget or BudgetConfig()
        self.store = store
        self.guard = guard or SessionGuard()
        self.events = events
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: ThinkingStateStore | None = None,
        events: EventBus | None = None,
        **kwargs: Any,
    ) -> TurnEngine:
        if store is None and settings.state_store == "memory":
            store = InMemoryThinkingStateStore(ttl=settings.state_ttl)
        elif store is None and settings.state_store == "sql":
            store = SqlThinkingStateStore(
                settings.state_db_url,
                ttl=settings.state_ttl,
                echo=settings.log_level == "debug",
            )
        return cls(
            classifier=TruncationClassifier(
                ClassifierOptions(min_text_length_for_heuristics=settings.heuristic_min_length)
            ),
            continuation=settings.continuation(),
            default_budget=settings.budget(),
            store=store,
            guard=SessionGuard(settings.session_policy),
            events=events,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_turn(
        self,
        request: TurnRequest,
        send: SendFn,
        *,
        complexity: TaskComplexity | None = None,
    ) -> TurnResult:
        """Run one turn to a terminal state.

        Raises TurnConfigurationError before any request for an invalid
        budget or an empty conversation, SessionBusyError under the
        'reject' policy, and TurnCancelledError (carrying the partial
        result) on cancellation. Transport errors propagate.
        """
        budget = self._validate(request)
        extractor = self.registry.resolve(request.provider, request.model_id)

        if self.store is not None and request.session_id:
            async with self.guard.hold(request.session_id):
                return await self._run(request, send, budget, extractor, complexity, tracked=True)
        return await self._run(request, send, budget, extractor, complexity, tracked=False)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _validate(self, request: TurnRequest) -> BudgetConfig:
        if not request.messages:
            raise TurnConfigurationError("request has no messages")
        budget = request.budget or self.default_budget
        try:
            # Re-validate: model_construct() and mutation bypass field constraints.
            return BudgetConfig.model_validate(budget.model_dump())
        except ValidationError as e:
            raise TurnConfigurationError(f"invalid budget: {e}") from e

    async def _run(
        self,
        request: TurnRequest,
        send: SendFn,
        budget: BudgetConfig,
        extractor: ReasoningExtractor,
        complexity: TaskComplexity | None,
        *,
        tracked: bool,
    ) -> TurnResult:
        detected = complexity or self.complexity.estimate(request.messages)
        input_tokens = self.estimator.count_messages(request.messages)
        ledger = _Ledger(started=self._clock(), reasoning_state=request.reasoning_state)

        session: ThinkingState | None = None
        if tracked:
            session = await self._load_session(request, extractor)
            if request.reasoning_state is None and session.reasoning_state is not None:
                request = dataclasses.replace(request, reasoning_state=session.reasoning_state)
                ledger.reasoning_state = session.reasoning_state

        current = request
        ctx = (request, detected, input_tokens)
        try:
            while True:
                ledger.state = TurnState.AWAITING_RESPONSE
                remaining = budget.max_duration.total_seconds() - self._elapsed(ledger)
                if remaining <= 0:
                    return await self._finish(ledger, TurnState.EXHAUSTED, ExhaustionCause.DEADLINE, *ctx)
                try:
                    response = await asyncio.wait_for(send(current), timeout=remaining)
                except TimeoutError:
                    logger.warning(
                        "Turn deadline hit while awaiting response (round %d)", current.continuation_index
                    )
                    return await self._finish(ledger, TurnState.EXHAUSTED, ExhaustionCause.DEADLINE, *ctx)

                ledger.state = TurnState.CLASSIFYING
                record = self._observe(ledger, current.continuation_index, response, extractor)
                self._check_budgets(ledger, budget)
                next_state, cause = self._decide(ledger, record, budget)

                if next_state == TurnState.CONTINUING:
                    ledger.continuation_count += 1
                if session is not None:
                    await self._save_session(
                        session, ledger, record, response, request, continuing=next_state == TurnState.CONTINUING
                    )

                if next_state != TurnState.CONTINUING:
                    return await self._finish(ledger, next_state, cause, *ctx)

                ledger.state = TurnState.CONTINUING
                logger.debug(
                    "Continuing turn: round %d truncated (%s), %d new tokens",
                    record.index,
                    record.truncation.reason,
                    record.new_tokens,
                )
                await self._emit(
                    TURN_CONTINUATION,
                    {
                        "continuation": ledger.continuation_count,
                        "reason": str(record.truncation.reason),
                        "new_tokens": record.new_tokens,
                    },
                    request.session_id,
                )
                if self.continuation.delay_seconds > 0:
                    await asyncio.sleep(self.continuation.delay_seconds)
                current = current.continue_with(self._continuation_messages(request, ledger), ledger.reasoning_state)
        except asyncio.CancelledError:
            partial = self._build_result(ledger, TurnState.EXHAUSTED, ExhaustionCause.CANCELLED, *ctx)
            logger.warning(
                "Turn cancelled after %d request(s); returning partial result", len(ledger.rounds)
            )
            await self._publish(partial, request.session_id)
            raise TurnCancelledError(partial) from None

    def _elapsed(self, ledger: _Ledger) -> float:
        return self._clock() - ledger.started

    def _observe(
        self,
        ledger: _Ledger,
        index: int,
        response: ChatResponse,
        extractor: ReasoningExtractor,
    ) -> RoundRecord:
        answer = self._safe(extractor.answer_text, response, fallback=response.text)
        truncation = self.classifier.classify(response, text=answer)
        if (
            not truncation.is_truncated
            and not self.classifier.completion_signalled(response)
            and self._safe(extractor.open_reasoning, response, fallback=False)
        ):
            # The answer heuristics never saw the reasoning span that was cut.
            truncation = TruncationInfo.truncated(
                TruncationReason.UNBALANCED_STRUCTURE, "ends inside an open reasoning span"
            )
        thinking = self._safe(extractor.try_parse, response)
        state = self._safe(extractor.extract_state, response)

        thinking_tokens, answer_tokens = self._count_tokens(response, thinking, answer)
        record = RoundRecord(
            index=index,
            finish_reason=response.finish_reason,
            truncation=truncation,
            thinking=thinking,
            thinking_tokens=thinking_tokens,
            answer_tokens=answer_tokens,
        )

        ledger.answers.append(answer)
        ledger.rounds.append(record)
        ledger.thinking_tokens += thinking_tokens
        ledger.answer_tokens += answer_tokens
        ledger.last_response = response
        ledger.truncation = truncation
        if state is not None:
            ledger.reasoning_state = state

        logger.debug(
            "Round %d: truncation=%s thinking=%d answer=%d",
            index,
            truncation.reason,
            thinking_tokens,
            answer_tokens,
        )
        return record

    def _safe(self, fn: Callable[[ChatResponse], Any], response: ChatResponse, fallback: Any = None) -> Any:
        try:
            return fn(response)
        except Exception:
            logger.warning("Reasoning extraction failed (%s); continuing without it", fn.__qualname__, exc_info=True)
            return fallback

    def _count_tokens(
        self,
        response: ChatResponse,
        thinking: ThinkingContent | None,
        answer: str,
    ) -> tuple[int, int]:
        """Provider figures where present, estimates otherwise.

        Reasoning is counted inside ``output_tokens`` by every provider, so
        the answer share is output minus thinking, whether the thinking
        figure was reported or estimated.
        """
        usage = response.usage or Usage()

        reported_thinking = (thinking.token_count if thinking and thinking.token_count else None) or usage.reasoning_tokens
        if reported_thinking is not None:
            thinking_tokens = reported_thinking
        else:
            thinking_tokens = self.estimator.count(thinking.text) if thinking else 0
            if usage.output_tokens is not None:
                thinking_tokens = min(thinking_tokens, usage.output_tokens)

        if usage.output_tokens is not None:
            answer_tokens = max(0, usage.output_tokens - thinking_tokens)
        else:
            answer_tokens = self.estimator.count(answer)
        return thinking_tokens, answer_tokens

    def _check_budgets(self, ledger: _Ledger, budget: BudgetConfig) -> None:
        if not ledger.thinking_budget_exceeded and ledger.thinking_tokens > budget.thinking_budget:
            ledger.thinking_budget_exceeded = True
            logger.warning("Thinking budget exceeded: %d > %d", ledger.thinking_tokens, budget.thinking_budget)
        if not ledger.answer_budget_exceeded and ledger.answer_tokens > budget.answer_budget:
            ledger.answer_budget_exceeded = True
            logger.warning("Answer budget exceeded: %d > %d", ledger.answer_tokens, budget.answer_budget)

    def _decide(
        self,
        ledger: _Ledger,
        record: RoundRecord,
        budget: BudgetConfig,
    ) -> tuple[TurnState, ExhaustionCause | None]:
        truncation = record.truncation
        if not truncation.is_truncated:
            return TurnState.COMPLETED, None
        if truncation.is_terminal:
            return TurnState.FAILED, None
        if ledger.continuation_count >= budget.max_continuations:
            return TurnState.EXHAUSTED, ExhaustionCause.MAX_CONTINUATIONS
        if self._elapsed(ledger) >= budget.max_duration.total_seconds():
            return TurnState.EXHAUSTED, ExhaustionCause.DEADLINE
        # The initial response is never judged as stalled.
        if record.index > 0 and self._progress(record) < budget.min_progress_tokens:
            return TurnState.EXHAUSTED, ExhaustionCause.NO_PROGRESS
        return TurnState.CONTINUING, None

    def _progress(self, record: RoundRecord) -> int:
        mode = self.continuation.progress_mode
        if mode == ProgressMode.ANSWER:
            return record.answer_tokens
        if mode == ProgressMode.THINKING:
            return record.thinking_tokens
        return record.new_tokens

    def _continuation_messages(self, request: TurnRequest, ledger: _Ledger) -> tuple[Message, ...]:
        messages = list(request.messages)
        merged = ledger.merged_answer
        if self.continuation.include_previous_response and merged:
            messages.append(Message("assistant", merged))
        messages.append(Message("user", self.continuation.prompt))
        return tuple(messages)

    # ------------------------------------------------------------------
    # Session tracking
    # ------------------------------------------------------------------

    async def _load_session(self, request: TurnRequest, extractor: ReasoningExtractor) -> ThinkingState:
        assert self.store is not None and request.session_id
        state = await self.store.get(request.session_id)
        if state is None:
            return ThinkingState(session_id=request.session_id, model_id=request.model_id)
        if state.reasoning_state is not None and state.reasoning_state.provider != extractor.provider:
            logger.debug(
                "Ignoring stored %s reasoning state for %s provider",
                state.reasoning_state.provider,
                extractor.provider,
            )
            state.reasoning_state = None
        return state

    async def _save_session(
        self,
        session: ThinkingState,
        ledger: _Ledger,
        record: RoundRecord,
        response: ChatResponse,
        request: TurnRequest,
        *,
        continuing: bool,
    ) -> None:
        assert self.store is not None
        session.model_id = response.model_id or request.model_id or session.model_id
        session.reasoning_state = ledger.reasoning_state
        session.total_thinking_tokens += record.thinking_tokens
        session.total_output_tokens += record.answer_tokens
        if continuing:
            session.continuation_count += 1
        session.updated_at = datetime.now(UTC)
        await self.store.set(session)

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------

    def _build_result(
        self,
        ledger: _Ledger,
        final_state: TurnState,
        cause: ExhaustionCause | None,
        request: TurnRequest,
        detected: TaskComplexity,
        input_tokens: int,
    ) -> TurnResult:
        ledger.state = final_state
        text = ledger.merged_answer
        repair = None
        if final_state in (TurnState.EXHAUSTED, TurnState.FAILED):
            repair = self.repairer.repair(text)
            text = repair.repaired_text

        metrics = TurnMetrics(
            input_tokens=input_tokens,
            thinking_tokens=ledger.thinking_tokens,
            output_tokens=ledger.answer_tokens,
            continuation_count=ledger.continuation_count,
            physical_requests=len(ledger.rounds),
            duration=timedelta(seconds=max(0.0, self._elapsed(ledger))),
            detected_complexity=detected,
            thinking_budget_exceeded=ledger.thinking_budget_exceeded,
            answer_budget_exceeded=ledger.answer_budget_exceeded,
        )

        last = ledger.last_response
        response = ChatResponse(
            content=[text],
            finish_reason=last.finish_reason if last else None,
            raw=last.raw if last else None,
            usage=Usage(
                input_tokens=input_tokens,
                output_tokens=ledger.answer_tokens + ledger.thinking_tokens,
                reasoning_tokens=ledger.thinking_tokens,
            ),
            model_id=(last.model_id if last else None) or request.model_id,
            metadata=dict(last.metadata) if last else {},
        )
        return TurnResult(
            status=_STATUS[final_state],
            final_state=final_state,
            response=response,
            thinking=[r.thinking for r in ledger.rounds if r.thinking is not None],
            reasoning_state=ledger.reasoning_state,
            metrics=metrics,
            truncation=ledger.truncation,
            exhaustion_cause=cause,
            repair=repair,
            rounds=list(ledger.rounds),
        )

    async def _finish(
        self,
        ledger: _Ledger,
        final_state: TurnState,
        cause: ExhaustionCause | None,
        request: TurnRequest,
        detected: TaskComplexity,
        input_tokens: int,
    ) -> TurnResult:
        result = self._build_result(ledger, final_state, cause, request, detected, input_tokens)
        if result.is_success:
            logger.info(
                "Turn completed: %d request(s), %d thinking / %d answer tokens",
                result.metrics.physical_requests,
                result.metrics.thinking_tokens,
                result.metrics.output_tokens,
            )
        elif result.is_failed:
            logger.warning("Turn failed: %s", result.truncation.reason if result.truncation else "unknown")
        else:
            logger.warning(
                "Turn exhausted (%s) after %d request(s)", cause, result.metrics.physical_requests
            )
        await self._publish(result, request.session_id)
        return result

    async def _publish(self, result: TurnResult, session_id: str | None) -> None:
        m = result.metrics
        await self._emit(
            TURN_COMPLETED,
            {
                "thinking_tokens": m.thinking_tokens,
                "continuation_count": m.continuation_count,
                "duration_seconds": m.duration.total_seconds(),
                "detected_complexity": str(m.detected_complexity) if m.detected_complexity else None,
                "was_truncated": not result.is_success,
                "status": str(result.status),
                "physical_requests": m.physical_requests,
                "exhaustion_cause": str(result.exhaustion_cause) if result.exhaustion_cause else None,
            },
            session_id,
        )

    async def _emit(self, event_type: str, data: dict[str, Any], session_id: str | None) -> None:
        if self.events is None:
            return
        try:
            await self.events.emit(Event(type=event_type, data=data, session_id=session_id))
        except Exception:
            logger.warning("Telemetry emit failed for %s", event_type, exc_info=True)
