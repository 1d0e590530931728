"""Serialized execution of runner operations.

Every operation that reads or replaces runner state is queued here and run
one at a time by a single worker task, in submission order. An exception
raised by a task is handed to ``on_error`` and also delivered to whoever
awaits that task's future.

Tests: tests/orchestration/test_task_queue.py
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from coachcoo.logger import get_logger

logger = get_logger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]
ErrorHandler = Callable[[BaseException], None]


class SerialTaskQueue:
    def __init__(self, on_error: Optional[ErrorHandler] = None) -> None:
        self._queue: asyncio.Queue[tuple[TaskFactory, asyncio.Future]] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._on_error = on_error
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, factory: TaskFactory) -> asyncio.Future:
        """Queue ``factory`` and return a future resolved with its result."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        if self._closed:
            future.set_result(None)
            return future
        self._queue.put_nowait((factory, future))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run())
        return future

    async def _run(self) -> None:
        while not self._queue.empty():
            factory, future = self._queue.get_nowait()
            try:
                result = await factory()
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception as exc:
                logger.error("Queued task failed: %s", exc, exc_info=True)
                if self._on_error is not None:
                    try:
                        self._on_error(exc)
                    except Exception:
                        logger.exception("Error handler failed")
                if not future.done():
                    future.set_exception(exc)
                    # Callers are not required to await; mark as retrieved.
                    future.exception()
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued task has finished."""
        await self._queue.join()

    async def close(self) -> None:
        """Refuse new tasks and wait for the queued ones to finish."""
        self._closed = True
        await self.drain()
