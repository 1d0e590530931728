"""Routine execution engine.

``RoutineRunner`` drives the pure interpreter from real-time events: it speaks
each prompt, opens a listen window or waits for a manual confirmation, feeds
the outcome to the interpreter and acts on the resulting transition. Every
state change runs through a :class:`SerialTaskQueue`, so only one step is ever
live and no two operations interleave.

Operations capture the step they target when requested. If the routine moved
on before the operation runs, it is dropped as stale. Timers and recognition
callbacks additionally carry the step attempt they were created for.

Tests: tests/test_routine_runner.py
"""
from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from coachcoo.config import RunnerConfig
from coachcoo.logger import get_logger
from engine.core.models import (
    AbortEvent,
    ConfirmEvent,
    HeardEvent,
    InterpreterSnapshot,
    InterpreterStatus,
    Prompt,
    Routine,
    Step,
    StepEvent,
    StepEventType,
    TimeoutEvent,
)
from engine.routines.keywords import match_keyword
from engine.routines.personalization import (
    ChildProfile,
    PersonalizationContext,
    personalize_text,
    pick_prompt_text,
)
from engine.services.adapters import (
    EventLogger,
    LogEvent,
    LogEventType,
    RecognitionResult,
    SpeechInput,
    SpeechOutput,
)

from .cancellation import CancellationToken, ListenCancelled
from .interpreter import apply_event, create_interpreter, get_current_step, is_finished
from .task_queue import SerialTaskQueue

logger = get_logger(__name__)


class RunnerStatus(str, Enum):
    IDLE = "idle"
    PROMPTING = "prompting"
    LISTENING = "listening"
    WAITING_CONFIRM = "waiting-confirm"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERROR = "error"


TERMINAL_STATUSES = frozenset(
    {RunnerStatus.COMPLETED, RunnerStatus.ABORTED, RunnerStatus.ERROR}
)


@dataclass(frozen=True)
class RunnerSnapshot:
    """Observable runner state, rebuilt on every change."""

    status: RunnerStatus
    session_id: str
    routine_id: str
    step_index: int
    total_steps: int
    engagement: float = 0.0
    current_step_id: Optional[str] = None
    prompt_text: Optional[str] = None
    prompt_anim: Optional[str] = None
    attempt: int = 0
    last_transcript: Optional[str] = None
    last_keyword: Optional[str] = None
    last_event_type: Optional[StepEventType] = None
    awaiting_reason: Optional[str] = None
    celebrate_anim: Optional[str] = None
    celebrate_tts: Optional[str] = None
    reward_points: Optional[int] = None
    reward_sticker: Optional[str] = None
    log_failures: int = 0
    error_message: Optional[str] = None


@dataclass
class RunnerOptions:
    session_id: str
    routine: Routine
    child: Optional[ChildProfile] = None
    personalization: Dict[str, Any] = field(default_factory=dict)
    listen_timeout_ms: Optional[int] = None
    auto_confirm_ms: Optional[int] = None
    use_stub_listener: Optional[bool] = None


@dataclass
class RunnerDependencies:
    speech_output: SpeechOutput
    event_logger: EventLogger
    speech_input: Optional[SpeechInput] = None
    clock: Optional[Callable[[], int]] = None
    rng: Optional[random.Random] = None


Listener = Callable[[RunnerSnapshot], None]


@dataclass(frozen=True)
class _Target:
    """Step (and optionally step attempt) an operation was requested for."""

    step_id: Optional[str]
    epoch: Optional[int] = None


def calc_engagement(successes: int, total: int) -> float:
    if not total:
        return 0.0
    return round(successes / total, 2)


class RoutineRunner:
    """Run a routine against speech adapters and an event log."""

    def __init__(
        self,
        options: RunnerOptions,
        dependencies: RunnerDependencies,
        config: RunnerConfig | None = None,
    ) -> None:
        self.options = options
        self.deps = dependencies
        self.config = config or RunnerConfig()
        self.routine = options.routine
        self._interpreter: InterpreterSnapshot = create_interpreter(self.routine)
        self._snapshot = RunnerSnapshot(
            status=RunnerStatus.COMPLETED if is_finished(self._interpreter) else RunnerStatus.IDLE,
            session_id=options.session_id,
            routine_id=self.routine.id,
            step_index=-1,
            total_steps=len(self.routine.steps),
        )
        self._listeners: List[Listener] = []
        self._queue = SerialTaskQueue(on_error=self._handle_error)
        self._successes: Set[str] = set()
        self._started = False
        self._start_future: Optional[asyncio.Future] = None
        self._disposed = False

        # bumped every time a step (or a repeat of it) starts
        self._epoch = 0
        self._listening = False
        self._listen_token: Optional[CancellationToken] = None
        self._listen_timer: Optional[asyncio.TimerHandle] = None
        self._auto_confirm_timer: Optional[asyncio.TimerHandle] = None
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def snapshot(self) -> RunnerSnapshot:
        return self._snapshot

    @property
    def interpreter_snapshot(self) -> InterpreterSnapshot:
        return self._interpreter

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` now and on every change; return an unsubscribe function."""
        self._listeners.append(listener)
        self._notify(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, listener: Listener) -> None:
        try:
            listener(self._snapshot)
        except Exception:
            logger.exception("Runner subscriber failed")

    def _update(self, **changes: Any) -> None:
        self._snapshot = replace(self._snapshot, **changes)
        for listener in list(self._listeners):
            self._notify(listener)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    async def start(self) -> None:
        if self._started:
            if self._start_future is not None:
                await asyncio.wait({self._start_future})
            return
        self._started = True
        if self._disposed:
            return
        self._start_future = self._queue.submit(self._start)
        await asyncio.wait({self._start_future})

    async def confirm_current_step(self, method: str = "manual") -> None:
        await self._request_confirm(method, self._current_target())

    async def timeout_current_step(self, source: str = "auto") -> None:
        await self._request_timeout(source, self._current_target())

    async def abort(self, reason: str = "user") -> None:
        await self._enqueue(lambda: self._abort(reason))

    async def dispose(self) -> None:
        """Stop everything and wait for queued work. Never raises."""
        if self._disposed:
            return
        self._disposed = True
        self._stop_listening()
        self._cancel_auto_confirm()
        # completed and aborted runs already stopped speech when they finished
        if self._snapshot.status not in (RunnerStatus.COMPLETED, RunnerStatus.ABORTED):
            await self._stop_speech()
        try:
            await self._queue.close()
        except Exception:
            logger.exception("Error while draining runner queue")
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._listeners.clear()
        logger.debug("Runner for session %s disposed", self.options.session_id)

    # ------------------------------------------------------------------
    # Queue plumbing
    # ------------------------------------------------------------------
    def _current_target(self) -> _Target:
        return _Target(self._interpreter.current_step_id)

    def _attempt_target(self) -> _Target:
        return _Target(self._interpreter.current_step_id, self._epoch)

    async def _enqueue(self, factory: Callable[[], Awaitable[Any]]) -> None:
        if self._disposed:
            return
        future = self._queue.submit(factory)
        # failures are reported through _handle_error
        await asyncio.wait({future})

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _is_terminal(self) -> bool:
        return self._snapshot.status in TERMINAL_STATUSES

    def _is_stale(self, target: _Target, operation: str) -> bool:
        current = self._interpreter.current_step_id
        if target.step_id != current or (
            target.epoch is not None and target.epoch != self._epoch
        ):
            logger.debug(
                "Discarding stale %s for step %s (current %s)", operation, target.step_id, current
            )
            return True
        return False

    def _handle_error(self, exc: BaseException) -> None:
        self._stop_listening()
        self._cancel_auto_confirm()
        self._update(status=RunnerStatus.ERROR, error_message=str(exc) or type(exc).__name__)

    def _now(self) -> int:
        if self.deps.clock is not None:
            return self.deps.clock()
        return int(time.time() * 1000)

    # ------------------------------------------------------------------
    # Queued tasks
    # ------------------------------------------------------------------
    async def _start(self) -> None:
        if self._is_terminal():
            return
        if is_finished(self._interpreter):
            self._update(status=RunnerStatus.COMPLETED, step_index=len(self.routine.steps))
            return
        logger.info(
            "Starting routine %s (session %s)", self.routine.id, self.options.session_id
        )
        await self._run_current_step()

    async def _request_confirm(self, method: str, target: _Target) -> None:
        async def task() -> None:
            if self._is_terminal() or self._is_stale(target, f"{method} confirm"):
                return
            step = self._require_current_step()
            self._stop_listening()
            self._cancel_auto_confirm()
            log_type = LogEventType.AUTO_CONFIRM if method == "auto" else LogEventType.MANUAL_CONFIRM
            await self._log_event(log_type, {"method": method})
            await self._advance(ConfirmEvent(step_id=step.id, at=self._now()))

        await self._enqueue(task)

    async def _request_timeout(self, source: str, target: _Target) -> None:
        async def task() -> None:
            if self._is_terminal() or self._is_stale(target, f"{source} timeout"):
                return
            step = self._require_current_step()
            self._stop_listening()
            self._cancel_auto_confirm()
            log_type = LogEventType.MANUAL_TIMEOUT if source == "manual" else LogEventType.TIMEOUT
            await self._log_event(log_type, {"source": source})
            await self._advance(
                TimeoutEvent(step_id=step.id, at=self._now(), timeout_ms=self._listen_timeout_for(step))
            )

        await self._enqueue(task)

    async def _abort(self, reason: str) -> None:
        if self._is_terminal():
            return
        step = self._require_current_step()
        self._stop_listening()
        self._cancel_auto_confirm()
        await self._log_event(LogEventType.ABORT, {"reason": reason})
        await self._advance(AbortEvent(step_id=step.id, at=self._now(), reason=reason))
        self._update(
            status=RunnerStatus.ABORTED,
            current_step_id=None,
            step_index=len(self.routine.steps),
        )
        logger.info("Routine %s aborted: %s", self.routine.id, reason)

    async def _submit_recognition(self, target: _Target, step: Step, result: RecognitionResult) -> None:
        keywords = list(step.listen.keywords) if step.listen else []
        matched = result.keyword_matched
        if keywords and matched not in keywords:
            matched = match_keyword(
                result.transcript, keywords, self.config.keyword_match_threshold
            )

        async def task() -> None:
            if self._is_terminal() or self._is_stale(target, "recognition result"):
                return
            if keywords and not matched:
                await self._log_event(
                    LogEventType.STT_NO_MATCH,
                    {"transcript": result.transcript, "keywords": keywords},
                )
                await self._enter_manual_confirm("stt_no_match", result.transcript)
                return
            await self._log_event(
                LogEventType.HEARD,
                {
                    "transcript": result.transcript,
                    "confidence": result.confidence,
                    "keyword": matched,
                },
            )
            await self._advance(
                HeardEvent(
                    step_id=step.id,
                    at=self._now(),
                    transcript=result.transcript,
                    keyword_matched=matched,
                )
            )

        await self._enqueue(task)

    async def _submit_stt_error(self, target: _Target, exc: BaseException) -> None:
        async def task() -> None:
            if self._is_terminal() or self._is_stale(target, "recognition error"):
                return
            await self._log_event(LogEventType.STT_ERROR, {"message": str(exc) or type(exc).__name__})
            await self._enter_manual_confirm("stt_error")

        await self._enqueue(task)

    # ------------------------------------------------------------------
    # Step execution (always called from inside a queued task)
    # ------------------------------------------------------------------
    def _require_current_step(self) -> Step:
        step = get_current_step(self._interpreter)
        if step is None:
            raise RuntimeError("RoutineRunner: no current step available")
        return step

    def _context(self) -> PersonalizationContext:
        return PersonalizationContext(
            child=self.options.child,
            routine_id=self.routine.id,
            session_id=self.options.session_id,
            extra=dict(self.options.personalization),
        )

    def _listen_timeout_for(self, step: Step) -> int:
        if step.listen is not None and step.listen.timeout_ms:
            return step.listen.timeout_ms
        if self.options.listen_timeout_ms:
            return self.options.listen_timeout_ms
        globals_ = self.routine.globals
        if globals_ is not None and globals_.listen is not None and globals_.listen.timeout_ms:
            return globals_.listen.timeout_ms
        return self.config.listen_timeout_ms

    def _auto_confirm_ms(self) -> int:
        if self.options.auto_confirm_ms is not None:
            return self.options.auto_confirm_ms
        return self.config.auto_confirm_ms

    def _stub_listener(self) -> bool:
        if self.options.use_stub_listener is not None:
            return self.options.use_stub_listener
        return self.config.use_stub_listener

    async def _run_current_step(self, prompt_override: Optional[Prompt] = None) -> None:
        step = self._require_current_step()
        self._epoch += 1
        context = self._context()
        prompt = prompt_override if prompt_override is not None else step.prompt
        prompt_text = pick_prompt_text(prompt, context, self.deps.rng) or personalize_text(
            step.prompt.tts, context
        )

        self._update(
            status=RunnerStatus.PROMPTING,
            current_step_id=step.id,
            step_index=self.routine.step_ids().index(step.id),
            prompt_text=prompt_text,
            prompt_anim=prompt.anim,
            attempt=self._interpreter.attempt_counts.get(step.id, 1),
            awaiting_reason=None,
            last_event_type=None,
            celebrate_anim=None,
            celebrate_tts=None,
            reward_points=None,
            reward_sticker=None,
        )
        await self._log_event(
            LogEventType.PROMPT,
            {"step_id": step.id, "prompt_text": prompt_text, "anim": prompt.anim},
        )
        await self.deps.speech_output.speak(prompt_text)
        if self._disposed:
            return

        if step.listen is None or not self.config.listener_enabled or self._stub_listener():
            await self._enter_manual_confirm("listener_disabled")
            return
        if self.deps.speech_input is None:
            await self._enter_manual_confirm("no_stt")
            return
        self._begin_listening(step)

    def _begin_listening(self, step: Step) -> None:
        timeout_ms = self._listen_timeout_for(step)
        keywords = list(step.listen.keywords) if step.listen else []
        target = self._attempt_target()
        token = CancellationToken()

        self._listening = True
        self._listen_token = token
        self._update(status=RunnerStatus.LISTENING)

        loop = asyncio.get_running_loop()
        self._listen_timer = loop.call_later(
            (timeout_ms + self.config.listen_safety_margin_ms) / 1000,
            self._on_listen_timer,
            target,
        )
        self._spawn(self._watch_recognition(step, target, token, timeout_ms, keywords))
        logger.debug("Listening on step %s for %d ms", step.id, timeout_ms)

    def _claim_listen(self, target: _Target) -> bool:
        """First completion path of a listen window wins; later ones are dropped."""
        if not self._listening or target.epoch != self._epoch:
            return False
        self._stop_listening()
        return True

    def _on_listen_timer(self, target: _Target) -> None:
        self._listen_timer = None
        if self._claim_listen(target):
            self._spawn(self._request_timeout("auto", target))

    async def _watch_recognition(
        self,
        step: Step,
        target: _Target,
        token: CancellationToken,
        timeout_ms: int,
        keywords: List[str],
    ) -> None:
        assert self.deps.speech_input is not None
        try:
            result = await self.deps.speech_input.record_until(
                timeout_ms=timeout_ms, keywords=keywords, cancel_token=token
            )
        except ListenCancelled:
            return
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not self._claim_listen(target):
                return
            logger.warning("Speech input failed on step %s: %s", step.id, exc)
            await self._submit_stt_error(target, exc)
            return

        if not self._claim_listen(target):
            return
        if result is None:
            await self._request_timeout("auto", target)
        else:
            await self._submit_recognition(target, step, result)

    def _stop_listening(self) -> None:
        if self._listen_timer is not None:
            self._listen_timer.cancel()
            self._listen_timer = None
        if not self._listening:
            return
        self._listening = False
        if self._listen_token is not None:
            self._listen_token.cancel("stopped")
            self._listen_token = None

    async def _enter_manual_confirm(self, reason: str, transcript: Optional[str] = None) -> None:
        self._stop_listening()
        self._update(
            status=RunnerStatus.WAITING_CONFIRM,
            awaiting_reason=reason,
            last_transcript=transcript if transcript is not None else self._snapshot.last_transcript,
        )
        self._schedule_auto_confirm()
        await self._log_event(LogEventType.AWAITING_CONFIRM, {"reason": reason})

    def _schedule_auto_confirm(self) -> None:
        if self._auto_confirm_timer is not None:
            return
        delay_ms = self._auto_confirm_ms()
        if not delay_ms or delay_ms <= 0:
            return
        target = self._attempt_target()
        loop = asyncio.get_running_loop()
        self._auto_confirm_timer = loop.call_later(delay_ms / 1000, self._on_auto_confirm, target)

    def _on_auto_confirm(self, target: _Target) -> None:
        self._auto_confirm_timer = None
        self._spawn(self._request_confirm("auto", target))

    def _cancel_auto_confirm(self) -> None:
        if self._auto_confirm_timer is None:
            return
        self._auto_confirm_timer.cancel()
        self._auto_confirm_timer = None

    async def _advance(self, event: StepEvent) -> None:
        self._stop_listening()
        result = apply_event(self._interpreter, event)
        if result.snapshot is self._interpreter:
            logger.debug("Interpreter ignored %s for step %s", event.type.value, event.step_id)
            return
        self._interpreter = result.snapshot
        transition = result.transition

        if event.type in (StepEventType.HEARD, StepEventType.CONFIRM) and not transition.repeat:
            self._successes.add(event.step_id)
        engagement = calc_engagement(len(self._successes), len(self.routine.steps))

        changes: Dict[str, Any] = {
            "last_event_type": event.type,
            "engagement": engagement,
            "celebrate_anim": transition.celebrate.anim if transition.celebrate else None,
            "celebrate_tts": transition.celebrate.tts if transition.celebrate else None,
            "reward_points": transition.reward.points if transition.reward else None,
            "reward_sticker": transition.reward.sticker if transition.reward else None,
        }
        if isinstance(event, (HeardEvent, ConfirmEvent)):
            if event.transcript is not None:
                changes["last_transcript"] = event.transcript
            if event.keyword_matched is not None:
                changes["last_keyword"] = event.keyword_matched
        self._update(**changes)
        logger.info(
            "Step %s %s -> %s",
            event.step_id,
            event.type.value,
            "done" if transition.done else transition.next_step_id,
        )

        next_step = transition.step if transition.step is not None else get_current_step(self._interpreter)
        if transition.done or is_finished(self._interpreter) or next_step is None:
            await self._finish(engagement)
            return
        await self._run_current_step(transition.prompt_override)

    async def _finish(self, engagement: float) -> None:
        aborted = self._interpreter.status is InterpreterStatus.ABORTED
        status = RunnerStatus.ABORTED if aborted else RunnerStatus.COMPLETED
        self._update(
            status=status,
            current_step_id=None,
            step_index=len(self.routine.steps),
        )
        await self._log_event(
            LogEventType.ROUTINE_COMPLETED,
            {"engagement": engagement, "status": status.value},
        )
        await self._stop_speech()
        self._cancel_auto_confirm()
        logger.info(
            "Routine %s finished (%s), engagement %.2f", self.routine.id, status.value, engagement
        )

    async def _stop_speech(self) -> None:
        try:
            await self.deps.speech_output.stop()
        except Exception:
            logger.exception("Speech output failed to stop")

    async def _log_event(self, type: LogEventType, value: Dict[str, Any]) -> None:
        event = LogEvent(
            session_id=self.options.session_id,
            routine_id=self.routine.id,
            step_id=self._snapshot.current_step_id,
            type=type,
            value=value,
            timestamp=self._now(),
        )
        try:
            await self.deps.event_logger.log_event(event)
        except Exception as exc:
            failures = self._snapshot.log_failures + 1
            logger.warning("Failed to log %s event: %s", type.value, exc)
            if failures == self.config.log_failure_threshold:
                logger.error(
                    "Event logger failed %d times in a row for session %s",
                    failures,
                    self.options.session_id,
                )
            self._update(log_failures=failures)
            return
        if self._snapshot.log_failures:
            self._update(log_failures=0)
