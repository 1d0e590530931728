import pytest

from engine.persistence import InMemoryEventLogger, SQLiteEventLogger
from engine.services.adapters import LogEvent, LogEventType


def _event(type_, ts, **value):
    return LogEvent(
        session_id="sess-1",
        routine_id="morning_v1",
        step_id="wake",
        type=type_,
        value=value,
        timestamp=ts,
    )


@pytest.mark.asyncio
async def test_in_memory_logger_keeps_order():
    log = InMemoryEventLogger()
    await log.log_event(_event(LogEventType.PROMPT, 1))
    await log.log_event(_event(LogEventType.HEARD, 2, transcript="up"))
    assert log.types() == ["prompt", "heard"]


@pytest.mark.asyncio
async def test_sqlite_logger_round_trip(tmp_path):
    db = tmp_path / "nested" / "coach.db"
    log = SQLiteEventLogger(db)
    session = await log.start_session("sess-1", "morning_v1", child_id="c1")
    assert session.started_at > 0

    await log.log_event(_event(LogEventType.HEARD, 20, transcript="I'm up", keyword="up"))
    await log.log_event(_event(LogEventType.PROMPT, 10, prompt_text="Wake up"))
    await log.end_session("sess-1", 0.5)

    events = log.list_events("sess-1")
    assert [e.type for e in events] == ["prompt", "heard"]
    assert events[1].value == {"transcript": "I'm up", "keyword": "up"}
    assert events[0].step_id == "wake"

    stored = log.get_session("sess-1")
    assert stored.child_id == "c1"
    assert stored.engagement == 0.5
    assert stored.ended_at is not None


@pytest.mark.asyncio
async def test_sqlite_logger_filters_by_session(tmp_path):
    log = SQLiteEventLogger(tmp_path / "coach.db")
    await log.log_event(_event(LogEventType.PROMPT, 1))
    other = LogEvent(session_id="sess-2", routine_id="r", type=LogEventType.ABORT, timestamp=2)
    await log.log_event(other)

    assert len(log.list_events()) == 2
    assert [e.session_id for e in log.list_events("sess-2")] == ["sess-2"]
    assert log.get_session("unknown") is None


def test_default_path_respects_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("COACHCOO_DATA_DIR", str(tmp_path / "data"))
    log = SQLiteEventLogger()
    assert log.db_path == tmp_path / "data" / "coachcoo.db"
    assert log.db_path.exists()
