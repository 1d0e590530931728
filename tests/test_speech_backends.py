import asyncio

import pytest

from engine.orchestration.cancellation import CancellationToken, ListenCancelled
from engine.services.adapters import RecognitionResult, SpeechInput, SpeechOutput
from engine.speech_backends import ConsoleSpeechOutput, ScriptedSpeechInput, SilentSpeechOutput, StubSpeechInput


def test_backends_satisfy_protocols():
    assert isinstance(StubSpeechInput(), SpeechInput)
    assert isinstance(ScriptedSpeechInput(), SpeechInput)
    assert isinstance(SilentSpeechOutput(), SpeechOutput)
    assert isinstance(ConsoleSpeechOutput(), SpeechOutput)


@pytest.mark.asyncio
async def test_stub_input_returns_none_after_window():
    stub = StubSpeechInput(delay_ms=5)
    result = await stub.record_until(timeout_ms=10_000, keywords=[], cancel_token=CancellationToken())
    assert result is None
    assert stub.calls == 1


@pytest.mark.asyncio
async def test_stub_input_honours_cancellation():
    token = CancellationToken()
    task = asyncio.ensure_future(
        StubSpeechInput().record_until(timeout_ms=10_000, keywords=[], cancel_token=token)
    )
    await asyncio.sleep(0)
    token.cancel()
    assert await asyncio.wait_for(task, timeout=1) is None


@pytest.mark.asyncio
async def test_scripted_input_replays_items():
    boom = RuntimeError("boom")
    scripted = ScriptedSpeechInput(["I'm Done", None, RecognitionResult("hi", confidence=0.4), boom])
    token = CancellationToken()

    first = await scripted.record_until(timeout_ms=100, keywords=["done"], cancel_token=token)
    assert first == RecognitionResult("I'm Done")
    assert first.keyword_matched is None
    assert await scripted.record_until(timeout_ms=100, keywords=[], cancel_token=token) is None
    third = await scripted.record_until(timeout_ms=100, keywords=[], cancel_token=token)
    assert third.confidence == 0.4
    with pytest.raises(RuntimeError):
        await scripted.record_until(timeout_ms=100, keywords=[], cancel_token=token)
    assert [c["timeout_ms"] for c in scripted.calls] == [100, 100, 100, 100]


@pytest.mark.asyncio
async def test_scripted_input_replays_pushed_items():
    scripted = ScriptedSpeechInput()
    token = CancellationToken()
    scripted.push("all done")
    scripted.push(None)

    first = await scripted.record_until(timeout_ms=100, keywords=["done"], cancel_token=token)
    assert first.transcript == "all done"
    assert await scripted.record_until(timeout_ms=100, keywords=["done"], cancel_token=token) is None
    assert len(scripted.calls) == 2


@pytest.mark.asyncio
async def test_scripted_input_raises_when_cancelled_during_delay():
    scripted = ScriptedSpeechInput(["late"], delay_ms=50)
    token = CancellationToken()
    task = asyncio.ensure_future(scripted.record_until(timeout_ms=100, keywords=[], cancel_token=token))
    await asyncio.sleep(0.01)
    token.cancel()
    with pytest.raises(ListenCancelled):
        await task


@pytest.mark.asyncio
async def test_console_output_prints(capsys):
    out = ConsoleSpeechOutput(prefix="coco")
    await out.speak("Hello")
    await out.stop()
    assert "coco> Hello" in capsys.readouterr().out
