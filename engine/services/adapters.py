"""Contracts for the runner's external collaborators.

The runner only talks to speech output, speech input and the event log
through these protocols. Implementations live in ``engine.speech_backends``
and ``engine.persistence``.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Sequence, runtime_checkable

from engine.orchestration.cancellation import CancellationToken


class LogEventType(str, Enum):
    PROMPT = "prompt"
    HEARD = "heard"
    MANUAL_CONFIRM = "manual_confirm"
    AUTO_CONFIRM = "auto_confirm"
    TIMEOUT = "timeout"
    MANUAL_TIMEOUT = "manual_timeout"
    ABORT = "abort"
    STT_NO_MATCH = "stt_no_match"
    STT_ERROR = "stt_error"
    AWAITING_CONFIRM = "awaiting_confirm"
    ROUTINE_COMPLETED = "routine_completed"


@dataclass(frozen=True)
class RecognitionResult:
    transcript: str
    keyword_matched: Optional[str] = None
    confidence: Optional[float] = None


@dataclass(frozen=True)
class LogEvent:
    session_id: str
    routine_id: str
    type: LogEventType
    step_id: Optional[str] = None
    value: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@runtime_checkable
class SpeechOutput(Protocol):
    async def speak(self, text: str) -> None: ...

    async def stop(self) -> None: ...


@runtime_checkable
class SpeechInput(Protocol):
    async def record_until(
        self,
        *,
        timeout_ms: int,
        keywords: Sequence[str],
        cancel_token: CancellationToken,
    ) -> Optional[RecognitionResult]:
        """Listen until speech is recognized, ``timeout_ms`` passes or the
        token is cancelled. Return ``None`` on silence or cancellation, or
        raise ``ListenCancelled``."""
        ...


@runtime_checkable
class EventLogger(Protocol):
    async def log_event(self, event: LogEvent) -> None: ...
