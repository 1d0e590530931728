"""Speech backends without external dependencies.

Useful for tests, demos and devices without a microphone.
"""
from __future__ import annotations

import asyncio
from collections import deque
from typing import Iterable, List, Optional, Sequence, Union

from engine.orchestration.cancellation import CancellationToken
from engine.services.adapters import RecognitionResult

ScriptItem = Union[str, RecognitionResult, BaseException, None]


class StubSpeechInput:
    """Never hears anything.

    Waits for the listen window (or cancellation) and resolves ``None``.
    ``delay_ms`` caps the wait so tests don't sleep for a full window.
    """

    def __init__(self, delay_ms: Optional[int] = None) -> None:
        self.delay_ms = delay_ms
        self.calls = 0

    async def record_until(
        self,
        *,
        timeout_ms: int,
        keywords: Sequence[str],
        cancel_token: CancellationToken,
    ) -> Optional[RecognitionResult]:
        self.calls += 1
        wait_ms = timeout_ms if self.delay_ms is None else min(timeout_ms, self.delay_ms)
        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=wait_ms / 1000)
        except asyncio.TimeoutError:
            pass
        return None


class ScriptedSpeechInput:
    """Replay a fixed sequence of recognition outcomes.

    Each listen consumes one script item: a raw transcript string, a
    ``RecognitionResult``, ``None`` (silence) or an exception to raise.
    Once the script is exhausted the input blocks until cancelled.
    """

    def __init__(self, script: Iterable[ScriptItem] = (), delay_ms: int = 0) -> None:
        self._script: deque[ScriptItem] = deque(script)
        self.delay_ms = delay_ms
        self.calls: List[dict] = []

    def push(self, item: ScriptItem) -> None:
        self._script.append(item)

    async def record_until(
        self,
        *,
        timeout_ms: int,
        keywords: Sequence[str],
        cancel_token: CancellationToken,
    ) -> Optional[RecognitionResult]:
        self.calls.append({"timeout_ms": timeout_ms, "keywords": list(keywords)})
        if not self._script:
            await cancel_token.wait()
            return None
        item = self._script.popleft()
        if self.delay_ms:
            await asyncio.sleep(self.delay_ms / 1000)
        cancel_token.raise_if_cancelled()
        if isinstance(item, BaseException):
            raise item
        if item is None or isinstance(item, RecognitionResult):
            return item
        # keyword matching is left to the runner and its configured threshold
        return RecognitionResult(transcript=item)


class SilentSpeechOutput:
    """Record what would have been spoken."""

    def __init__(self) -> None:
        self.spoken: List[str] = []
        self.stop_calls = 0

    async def speak(self, text: str) -> None:
        self.spoken.append(text)

    async def stop(self) -> None:
        self.stop_calls += 1
