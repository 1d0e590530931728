from .events import (
    AbortEvent,
    BranchResolution,
    ConfirmEvent,
    HeardEvent,
    InterpreterResult,
    InterpreterSnapshot,
    InterpreterStatus,
    StepEvent,
    StepEventType,
    TimeoutEvent,
    Transition,
)
from .routine import (
    Branch,
    BranchCelebrate,
    BranchRetry,
    BranchReward,
    GlobalListen,
    Listen,
    Prompt,
    PromptVariant,
    Routine,
    RoutineGlobals,
    Step,
    StepShaping,
)

__all__ = [
    "AbortEvent",
    "Branch",
    "BranchCelebrate",
    "BranchResolution",
    "BranchRetry",
    "BranchReward",
    "ConfirmEvent",
    "GlobalListen",
    "HeardEvent",
    "InterpreterResult",
    "InterpreterSnapshot",
    "InterpreterStatus",
    "Listen",
    "Prompt",
    "PromptVariant",
    "Routine",
    "RoutineGlobals",
    "Step",
    "StepEvent",
    "StepEventType",
    "StepShaping",
    "TimeoutEvent",
    "Transition",
]
