"""Step events and interpreter state values.

Everything in this module is an immutable value. The interpreter returns new
snapshots rather than changing the ones it was given.

Tests: tests/orchestration/test_interpreter.py
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import ClassVar, Mapping, Optional, Tuple, Union

from .routine import Branch, BranchCelebrate, BranchReward, Prompt, Routine, Step


class StepEventType(str, Enum):
    HEARD = "heard"
    CONFIRM = "confirm"
    TIMEOUT = "timeout"
    ABORT = "abort"


class InterpreterStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class HeardEvent:
    step_id: str
    at: int
    transcript: Optional[str] = None
    keyword_matched: Optional[str] = None

    type: ClassVar[StepEventType] = StepEventType.HEARD


@dataclass(frozen=True)
class ConfirmEvent:
    step_id: str
    at: int
    transcript: Optional[str] = None
    keyword_matched: Optional[str] = None

    type: ClassVar[StepEventType] = StepEventType.CONFIRM


@dataclass(frozen=True)
class TimeoutEvent:
    step_id: str
    at: int
    timeout_ms: int = 0

    type: ClassVar[StepEventType] = StepEventType.TIMEOUT


@dataclass(frozen=True)
class AbortEvent:
    step_id: str
    at: int
    reason: Optional[str] = None

    type: ClassVar[StepEventType] = StepEventType.ABORT


StepEvent = Union[HeardEvent, ConfirmEvent, TimeoutEvent, AbortEvent]


@dataclass(frozen=True)
class InterpreterSnapshot:
    """Progress through a routine.

    ``current_step_id`` is set exactly when ``status`` is running. The count
    mappings are copied into read-only views when the snapshot is built.
    """

    routine: Routine
    current_step_id: Optional[str]
    status: InterpreterStatus
    attempt_counts: Mapping[str, int] = field(default_factory=dict)
    success_counts: Mapping[str, int] = field(default_factory=dict)
    completed_step_ids: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "attempt_counts", MappingProxyType(dict(self.attempt_counts)))
        object.__setattr__(self, "success_counts", MappingProxyType(dict(self.success_counts)))


@dataclass(frozen=True)
class BranchResolution:
    next_step_id: Optional[str]
    repeat: bool
    prompt_override: Optional[Prompt] = None
    celebrate: Optional[BranchCelebrate] = None
    reward: Optional[BranchReward] = None
    branch: Optional[Branch] = None


@dataclass(frozen=True)
class Transition:
    done: bool
    repeat: bool
    reason: StepEventType
    step: Optional[Step] = None
    next_step_id: Optional[str] = None
    prompt_override: Optional[Prompt] = None
    celebrate: Optional[BranchCelebrate] = None
    reward: Optional[BranchReward] = None
    branch: Optional[Branch] = None


@dataclass(frozen=True)
class InterpreterResult:
    snapshot: InterpreterSnapshot
    transition: Transition
