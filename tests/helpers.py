"""Shared builders for tests."""
from engine.core.models import Routine


def make_routine(steps, routine_id="test_routine", title="Test routine", **extra) -> Routine:
    """Build a validated routine from plain step dicts."""
    return Routine.model_validate({"id": routine_id, "title": title, "steps": steps, **extra})
