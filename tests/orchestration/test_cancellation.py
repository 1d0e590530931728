import asyncio

import pytest

from engine.orchestration.cancellation import CancellationToken, ListenCancelled


@pytest.mark.asyncio
async def test_cancel_wakes_waiters_once():
    token = CancellationToken()
    assert not token.cancelled
    waiter = asyncio.ensure_future(token.wait())
    await asyncio.sleep(0)
    assert not waiter.done()

    token.cancel("first")
    token.cancel("second")
    await asyncio.wait_for(waiter, timeout=1)
    assert token.cancelled
    assert token.reason == "first"


@pytest.mark.asyncio
async def test_raise_if_cancelled():
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()
    with pytest.raises(ListenCancelled):
        token.raise_if_cancelled()
