"""Roundtable orchestration: parallel backend calls, fallback, early termination, post-processing."""

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from roundtable.analysis import calculate_consensus, detect_duplicates, rank_responses
from roundtable.caller import ModelCaller
from roundtable.models import (
    BackendState,
    ExecutionStrategy,
    ProgressEvent,
    RoundtableExecution,
    RoundtableResponse,
    SessionSettings,
)
from roundtable.providers.base import BackendError, FallbackExhausted
from roundtable.slots import ConcurrencySlotManager

logger = logging.getLogger(__name__)

# Expensive backend -> cheaper sibling, tried once on failure.
DEFAULT_FALLBACKS: dict[str, str] = {
    "gpt-4o": "gpt-3.5-turbo",
    "claude-3-opus": "claude-3-5-sonnet",
    "claude-3-5-sonnet": "claude-3-haiku",
    "gemini-pro": "gemini-flash",
}

SKIPPED_BY_CONSENSUS = "skipped by early consensus"

# Early termination needs this many answers agreeing at this consensus level
_EARLY_STOP_MIN_RESPONSES = 3
_EARLY_STOP_CONSENSUS = 85

_TRANSITIONS: dict[BackendState, frozenset[BackendState]] = {
    BackendState.PENDING: frozenset({BackendState.EXECUTING, BackendState.ERROR}),
    BackendState.EXECUTING: frozenset({BackendState.STREAMING, BackendState.COMPLETED, BackendState.ERROR}),
    BackendState.STREAMING: frozenset({BackendState.STREAMING, BackendState.COMPLETED, BackendState.ERROR}),
    BackendState.COMPLETED: frozenset(),
    BackendState.ERROR: frozenset(),
}

ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class _Run:
    """Per-call bookkeeping for one execute() invocation."""

    execution: RoundtableExecution
    strategy: ExecutionStrategy
    on_progress: ProgressCallback | None
    global_slots: asyncio.Semaphore
    order: list[str]
    stopped: bool = False

    def progress(self, index: int, step: float) -> float:
        return min(100.0, (index + step) / len(self.order) * 100)


class RoundtableExecutor:
    """Fans one prompt out to several backends and reconciles the answers.

    Holds no per-execution state; one instance can serve concurrent
    execute() calls, all sharing the same slot manager.
    """

    def __init__(
        self,
        caller: ModelCaller,
        slots: ConcurrencySlotManager,
        fallbacks: dict[str, str] | None = None,
        shuffle: Callable[[list[str]], None] = random.shuffle,
    ) -> None:
        self._caller = caller
        self._slots = slots
        self._fallbacks = dict(DEFAULT_FALLBACKS if fallbacks is None else fallbacks)
        self._shuffle = shuffle

    async def execute(
        self,
        prompt: str,
        backends: list[str],
        settings: SessionSettings | None = None,
        strategy: ExecutionStrategy | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> RoundtableExecution:
        """Run a roundtable across backends.

        Returns once every backend is completed or error. Backend failures are
        recorded on the execution, never raised.

        Raises:
            ValueError: Empty prompt, empty/duplicate backend list, or a
                backend with no configured provider.
        """
        self._validate(prompt, backends)
        settings = settings or SessionSettings()
        strategy = strategy or ExecutionStrategy()

        execution = RoundtableExecution(
            id=f"roundtable_{uuid.uuid4().hex[:12]}",
            backends=list(backends),
            prompt=prompt,
            settings=settings,
            start_time=time.monotonic(),
        )
        for backend in backends:
            execution.states[backend] = BackendState.PENDING

        waves = self._plan_waves(backends, strategy)
        run = _Run(
            execution=execution,
            strategy=strategy,
            on_progress=on_progress,
            global_slots=asyncio.Semaphore(max(1, strategy.max_concurrency)),
            order=[b for wave in waves for b in wave],
        )

        logger.info(
            "Roundtable %s: %d backends, order=%s, cost_optimization=%s",
            execution.id, len(backends), run.order, strategy.cost_optimization,
        )

        for wave in waves:
            results = await asyncio.gather(
                *(self._run_backend(run, backend) for backend in wave),
                return_exceptions=True,
            )
            for backend, result in zip(wave, results):
                if isinstance(result, BaseException):
                    logger.error("Backend %s task crashed: %r", backend, result)
                    self._fail(run, backend, f"Unexpected error: {result}")

        # Every backend must be terminal before the record is handed back.
        for backend, state in list(execution.states.items()):
            if state not in (BackendState.COMPLETED, BackendState.ERROR):
                self._fail(run, backend, "Did not settle")

        self._post_process(execution, strategy)

        logger.info(
            "Roundtable %s complete: %d/%d backends succeeded, consensus %d%% (%s)",
            execution.id,
            len(execution.responses),
            len(execution.states),
            execution.metadata.consensus.level,
            execution.metadata.consensus.agreement,
        )
        return execution

    def _validate(self, prompt: str, backends: list[str]) -> None:
        if not prompt or not prompt.strip():
            raise ValueError("prompt must not be empty")
        if not backends:
            raise ValueError("at least one backend is required")
        if len(set(backends)) != len(backends):
            raise ValueError(f"duplicate backends in {backends}")
        unknown = [b for b in backends if not self._caller.has_backend(b)]
        if unknown:
            raise ValueError(f"No provider configured for: {', '.join(unknown)}")

    def _plan_waves(self, backends: list[str], strategy: ExecutionStrategy) -> list[list[str]]:
        """Priority backends go first as their own wave when optimizing for cost."""
        if not strategy.cost_optimization:
            order = list(backends)
            self._shuffle(order)  # fairness
            return [order]
        priority = [b for b in strategy.priority_backends if b in backends]
        regular = [b for b in backends if b not in priority]
        return [wave for wave in (priority, regular) if wave]

    async def _run_backend(self, run: _Run, backend: str) -> None:
        execution = run.execution
        index = run.order.index(backend)
        if execution.states[backend] is not BackendState.PENDING:
            return

        failure: BackendError | None = None
        async with run.global_slots, self._slots.slot(backend):
            # May have been skipped while waiting for a slot.
            if execution.states[backend] is not BackendState.PENDING:
                return
            self._transition(execution, backend, BackendState.EXECUTING)
            self._emit(run, "model_start", backend, run.progress(index, 0))

            def on_chunk(chunk: str) -> None:
                self._transition(execution, backend, BackendState.STREAMING)
                self._emit(run, "model_streaming", backend, run.progress(index, 0.5), content=chunk)

            try:
                response = await self._caller.call(
                    backend,
                    execution.prompt,
                    execution.settings,
                    run.strategy.timeout_sec,
                    on_chunk=on_chunk,
                )
            except BackendError as exc:
                failure = exc
            else:
                self._complete(run, backend, response, index)

        if failure is None:
            return

        logger.warning("Backend %s failed: %s", backend, failure)
        self._fail(run, backend, str(failure), index)
        if run.strategy.fallback_chain:
            await self._attempt_fallback(run, backend, index)

    async def _attempt_fallback(self, run: _Run, failed: str, index: int) -> None:
        execution = run.execution
        fallback = self._fallbacks.get(failed)
        if not fallback or run.stopped:
            return
        if fallback in execution.states:
            # Requested directly or already claimed by another fallback; it has its own writer.
            logger.info("Fallback %s for %s already in this roundtable, not retrying", fallback, failed)
            return
        if not self._caller.has_backend(fallback):
            execution.errors[failed] = str(FallbackExhausted(failed, fallback, "no provider configured"))
            return

        logger.info("Falling back from %s to %s", failed, fallback)
        execution.states[fallback] = BackendState.PENDING
        try:
            async with run.global_slots, self._slots.slot(fallback):
                if execution.states[fallback] is not BackendState.PENDING:
                    return
                self._transition(execution, fallback, BackendState.EXECUTING)
                response = await self._caller.call(
                    fallback,
                    execution.prompt,
                    execution.settings,
                    run.strategy.fallback_timeout_sec,
                )
        except BackendError as exc:
            self._transition(execution, fallback, BackendState.ERROR)
            execution.errors[fallback] = str(exc)
            exhausted = FallbackExhausted(failed, fallback, str(exc))
            execution.errors[failed] = str(exhausted)
            logger.warning("%s", exhausted)
            return

        response.fallback_for = failed
        self._complete(run, fallback, response, index)

    def _complete(self, run: _Run, backend: str, response: RoundtableResponse, index: int) -> None:
        execution = run.execution
        execution.responses[backend] = response
        self._transition(execution, backend, BackendState.COMPLETED)
        execution.metadata.total_cost += response.metadata.cost
        execution.metadata.total_latency_sec = max(
            execution.metadata.total_latency_sec,
            time.monotonic() - execution.start_time,
        )
        self._emit(run, "model_complete", backend, run.progress(index, 1), response=response)

        if run.strategy.cost_optimization and not run.stopped and self._should_stop_early(execution):
            self._stop_early(run)

    def _fail(self, run: _Run, backend: str, error: str, index: int | None = None) -> None:
        execution = run.execution
        if not self._transition(execution, backend, BackendState.ERROR):
            return
        execution.errors[backend] = error
        if index is None:
            index = run.order.index(backend) if backend in run.order else len(run.order) - 1
        self._emit(run, "model_error", backend, run.progress(index, 1), error=error)

    def _should_stop_early(self, execution: RoundtableExecution) -> bool:
        completed = list(execution.responses.values())
        if len(completed) < _EARLY_STOP_MIN_RESPONSES:
            return False
        return calculate_consensus(completed).level >= _EARLY_STOP_CONSENSUS

    def _stop_early(self, run: _Run) -> None:
        """Mark every backend that has not started as skipped."""
        run.stopped = True
        run.execution.metadata.early_terminated = True
        pending = [b for b, s in run.execution.states.items() if s is BackendState.PENDING]
        logger.info("Early consensus reached, skipping %d backend(s): %s", len(pending), pending)
        for backend in pending:
            self._fail(run, backend, SKIPPED_BY_CONSENSUS)

    def _transition(self, execution: RoundtableExecution, backend: str, new: BackendState) -> bool:
        current = execution.states.get(backend, BackendState.PENDING)
        if new not in _TRANSITIONS[current]:
            logger.debug("Ignoring %s transition %s -> %s", backend, current.value, new.value)
            return False
        execution.states[backend] = new
        return True

    def _emit(self, run: _Run, event_type: str, backend: str, progress: float, **fields) -> None:
        if run.on_progress is None:
            return
        event = ProgressEvent(
            type=event_type,
            execution_id=run.execution.id,
            backend=backend,
            progress=progress,
            **fields,
        )
        try:
            run.on_progress(event)
        except Exception:
            logger.exception("Progress callback failed on %s for %s", event_type, backend)

    def _post_process(self, execution: RoundtableExecution, strategy: ExecutionStrategy) -> None:
        responses = list(execution.responses.values())
        if len(responses) < 2 and len(execution.backends) >= 2:
            logger.warning(
                "Only %d/%d backends answered; consensus and dedup are degraded.",
                len(responses),
                len(execution.backends),
            )
        if not responses:
            return
        execution.metadata.duplicate_groups = detect_duplicates(responses, strategy.deduplication_threshold)
        execution.metadata.consensus = calculate_consensus(responses)
        rank_responses(responses, execution.prompt)
