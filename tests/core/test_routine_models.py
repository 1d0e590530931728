import pytest
from pydantic import ValidationError

from engine.core.models import ConfirmEvent, Routine, StepEventType, TimeoutEvent


def test_routine_is_immutable():
    routine = Routine.model_validate(
        {"id": "r", "title": "R", "steps": [{"id": "a", "prompt": {"tts": "A"}}]}
    )
    assert isinstance(routine.steps, tuple)
    with pytest.raises(ValidationError):
        routine.title = "changed"
    with pytest.raises(ValidationError):
        routine.steps[0].prompt.tts = "changed"


def test_listen_and_shaping_bounds():
    with pytest.raises(ValidationError):
        Routine.model_validate(
            {"id": "r", "title": "R", "steps": [{"id": "a", "prompt": {"tts": "A"}, "listen": {"timeout_ms": 0}}]}
        )
    with pytest.raises(ValidationError):
        Routine.model_validate(
            {"id": "r", "title": "R", "steps": [{"id": "a", "prompt": {"tts": "A"}, "shaping": {"max_attempts": 0}}]}
        )


def test_to_dict_drops_unset_optionals():
    routine = Routine.model_validate(
        {"id": "r", "title": "R", "steps": [{"id": "a", "prompt": {"tts": "A"}, "on_heard": {"next": "a"}}]}
    )
    data = routine.to_dict()
    assert data["steps"][0]["on_heard"] == {"next": "a"}
    assert "listen" not in data["steps"][0]
    assert routine.step_ids() == ["a"]


def test_event_types_are_class_level():
    assert ConfirmEvent(step_id="a", at=0).type is StepEventType.CONFIRM
    assert TimeoutEvent(step_id="a", at=0, timeout_ms=5).type is StepEventType.TIMEOUT
