"""Cancellation token shared between the runner and a speech input."""
from __future__ import annotations

import asyncio


class ListenCancelled(Exception):
    """Raised by a speech input when its listen window was cancelled."""


class CancellationToken:
    """One-shot cancellation signal.

    ``cancelled`` can be read synchronously; ``wait()`` lets a coroutine block
    until ``cancel()`` is called. Cancelling twice has no further effect.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ListenCancelled(self.reason or "cancelled")
