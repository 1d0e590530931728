"""Pure routine interpreter.

``apply_event(snapshot, event)`` returns a new snapshot and a transition
describing what the runner should do next (repeat the step, advance, or
finish). Nothing here touches audio, timers or storage, which keeps the
progression rules testable on their own.

Tests: tests/orchestration/test_interpreter.py
"""
from __future__ import annotations

from dataclasses import replace
from typing import Optional, assert_never

from engine.core.models import (
    AbortEvent,
    Branch,
    BranchResolution,
    ConfirmEvent,
    HeardEvent,
    InterpreterResult,
    InterpreterSnapshot,
    InterpreterStatus,
    Routine,
    Step,
    StepEvent,
    StepEventType,
    TimeoutEvent,
    Transition,
)

_FINISHED = (InterpreterStatus.COMPLETED, InterpreterStatus.ABORTED)


def create_interpreter(routine: Routine) -> InterpreterSnapshot:
    """Return the initial snapshot for ``routine``.

    A routine without steps starts out completed.
    """
    if not routine.steps:
        return InterpreterSnapshot(
            routine=routine,
            current_step_id=None,
            status=InterpreterStatus.COMPLETED,
        )
    first = routine.steps[0].id
    return InterpreterSnapshot(
        routine=routine,
        current_step_id=first,
        status=InterpreterStatus.RUNNING,
        attempt_counts={first: 1},
    )


def find_step(routine: Routine, step_id: Optional[str]) -> Optional[Step]:
    if step_id is None:
        return None
    for step in routine.steps:
        if step.id == step_id:
            return step
    return None


def sequential_next_step_id(routine: Routine, step_id: str) -> Optional[str]:
    """Return the id of the step declared after ``step_id``, if any."""
    ids = routine.step_ids()
    try:
        index = ids.index(step_id)
    except ValueError:
        return None
    if index + 1 < len(ids):
        return ids[index + 1]
    return None


def get_current_step(snapshot: InterpreterSnapshot) -> Optional[Step]:
    return find_step(snapshot.routine, snapshot.current_step_id)


def is_finished(snapshot: InterpreterSnapshot) -> bool:
    return snapshot.status in _FINISHED


def resolve_branch(
    snapshot: InterpreterSnapshot,
    step: Step,
    branch: Optional[Branch],
    reason: StepEventType,
) -> BranchResolution:
    """Decide where ``step`` goes next given the branch that applies.

    A retry is granted while the step's attempt count is below ``retry.max``
    (or ``shaping.max_attempts`` when the retry has no max of its own).
    """
    sequential = sequential_next_step_id(snapshot.routine, step.id)
    if branch is None:
        return BranchResolution(next_step_id=sequential, repeat=False)

    attempts = snapshot.attempt_counts.get(step.id, 1)
    if branch.retry is not None:
        retry_max = branch.retry.max
        if retry_max is None and step.shaping is not None:
            retry_max = step.shaping.max_attempts
        if retry_max is None or attempts < retry_max:
            return BranchResolution(
                next_step_id=step.id,
                repeat=True,
                prompt_override=branch.retry.prompt_override,
                celebrate=branch.celebrate,
                reward=branch.reward,
                branch=branch,
            )

    return BranchResolution(
        next_step_id=branch.next or sequential,
        repeat=False,
        celebrate=branch.celebrate,
        reward=branch.reward,
        branch=branch,
    )


def _progress(
    snapshot: InterpreterSnapshot,
    step: Step,
    resolution: BranchResolution,
    reason: StepEventType,
) -> InterpreterResult:
    completed = snapshot.completed_step_ids
    if step.id not in completed:
        completed = completed + (step.id,)

    next_step = find_step(snapshot.routine, resolution.next_step_id)
    if next_step is None:
        finished = replace(
            snapshot,
            current_step_id=None,
            status=InterpreterStatus.COMPLETED,
            completed_step_ids=completed,
        )
        return InterpreterResult(finished, _transition(resolution, reason, done=True))

    attempts = dict(snapshot.attempt_counts)
    attempts[next_step.id] = attempts.get(next_step.id, 0) + 1
    same_step = next_step.id == step.id and resolution.repeat
    progressed = replace(
        snapshot,
        current_step_id=next_step.id,
        status=InterpreterStatus.RUNNING,
        attempt_counts=attempts,
        completed_step_ids=snapshot.completed_step_ids if same_step else completed,
    )
    return InterpreterResult(
        progressed, _transition(resolution, reason, done=False, step=next_step)
    )


def _transition(
    resolution: BranchResolution,
    reason: StepEventType,
    *,
    done: bool,
    step: Optional[Step] = None,
) -> Transition:
    return Transition(
        done=done,
        repeat=resolution.repeat,
        reason=reason,
        step=step,
        next_step_id=resolution.next_step_id,
        prompt_override=resolution.prompt_override,
        celebrate=resolution.celebrate,
        reward=resolution.reward,
        branch=resolution.branch,
    )


def apply_event(snapshot: InterpreterSnapshot, event: StepEvent) -> InterpreterResult:
    """Feed ``event`` to the interpreter.

    Events for a step other than the current one are stale: the very same
    snapshot object is returned so callers can detect the no-op by identity.
    """
    if is_finished(snapshot):
        return InterpreterResult(
            snapshot, Transition(done=True, repeat=False, reason=event.type)
        )

    step = get_current_step(snapshot)
    if step is None or step.id != event.step_id:
        return InterpreterResult(
            snapshot,
            Transition(done=step is None, repeat=False, reason=event.type),
        )

    if isinstance(event, AbortEvent):
        aborted = replace(
            snapshot, status=InterpreterStatus.ABORTED, current_step_id=None
        )
        return InterpreterResult(
            aborted, Transition(done=True, repeat=False, reason=StepEventType.ABORT)
        )
    elif isinstance(event, (HeardEvent, ConfirmEvent)):
        required = 1
        if step.shaping is not None and step.shaping.required_successes:
            required = step.shaping.required_successes
        successes = dict(snapshot.success_counts)
        successes[step.id] = successes.get(step.id, 0) + 1
        updated = replace(snapshot, success_counts=successes)
        if successes[step.id] < required:
            return InterpreterResult(
                updated,
                Transition(done=False, repeat=True, reason=event.type, step=step),
            )
        resolution = resolve_branch(updated, step, step.on_heard, event.type)
        return _progress(updated, step, resolution, event.type)
    elif isinstance(event, TimeoutEvent):
        resolution = resolve_branch(snapshot, step, step.on_timeout, event.type)
        return _progress(snapshot, step, resolution, event.type)
    else:
        assert_never(event)
