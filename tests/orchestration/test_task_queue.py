import asyncio

import pytest

from engine.orchestration.task_queue import SerialTaskQueue


@pytest.mark.asyncio
async def test_tasks_run_in_submission_order_without_overlap():
    queue = SerialTaskQueue()
    events = []

    def make(name, delay):
        async def task():
            events.append(f"{name}:start")
            await asyncio.sleep(delay)
            events.append(f"{name}:end")
            return name

        return task

    futures = [queue.submit(make("a", 0.02)), queue.submit(make("b", 0)), queue.submit(make("c", 0.01))]
    results = await asyncio.gather(*futures)

    assert results == ["a", "b", "c"]
    assert events == ["a:start", "a:end", "b:start", "b:end", "c:start", "c:end"]


@pytest.mark.asyncio
async def test_failure_goes_to_error_handler_and_queue_continues():
    errors = []
    queue = SerialTaskQueue(on_error=errors.append)

    async def boom():
        raise RuntimeError("boom")

    async def ok():
        return 42

    failed = queue.submit(boom)
    after = queue.submit(ok)

    assert await after == 42
    with pytest.raises(RuntimeError):
        await failed
    assert len(errors) == 1
    assert str(errors[0]) == "boom"


@pytest.mark.asyncio
async def test_closed_queue_ignores_new_tasks():
    queue = SerialTaskQueue()
    ran = []

    async def task():
        ran.append(True)

    await queue.close()
    assert queue.closed
    assert await queue.submit(task) is None
    assert ran == []


@pytest.mark.asyncio
async def test_drain_waits_for_pending_work():
    queue = SerialTaskQueue()
    done = []

    async def slow():
        await asyncio.sleep(0.01)
        done.append(1)

    queue.submit(slow)
    queue.submit(slow)
    await queue.drain()
    assert done == [1, 1]
