import random

from engine.core.models import Prompt
from engine.routines.personalization import (
    ChildProfile,
    PersonalizationContext,
    personalize_text,
    pick_prompt_text,
)


def _ctx(**extra):
    return PersonalizationContext(
        child=ChildProfile(id="c1", display_name="Mia", nickname="Mimi"),
        routine_id="morning_v1",
        session_id="sess-1",
        extra=extra,
    )


def test_slots_resolve_dotted_paths():
    text = personalize_text("Hi {{ child.display_name }} ({{child.nickname}}) on {{ routine_id }}", _ctx())
    assert text == "Hi Mia (Mimi) on morning_v1"


def test_missing_paths_become_empty():
    assert personalize_text("Hi {{ child.name }}{{ nope.deeper }}!", _ctx()) == "Hi !"


def test_extra_mapping_values():
    assert personalize_text("{{ extra.pet }} says hi", _ctx(pet="Rex")) == "Rex says hi"


def test_plain_mapping_context():
    ctx = {"child": {"display_name": "Sam"}, "weather": "sunny"}
    assert personalize_text("{{child.display_name}}, it's {{ weather }}", ctx) == "Sam, it's sunny"


def test_empty_text():
    assert personalize_text(None, _ctx()) == ""
    assert personalize_text("", _ctx()) == ""


def test_pick_prompt_without_variants_uses_base_text():
    prompt = Prompt(tts="Brush, {{ child.display_name }}")
    assert pick_prompt_text(prompt, _ctx()) == "Brush, Mia"


def test_pick_prompt_respects_weights():
    prompt = Prompt.model_validate(
        {
            "tts": "base",
            "tts_variants": [
                {"text": "never", "weight": 0},
                {"text": "always {{ child.display_name }}", "weight": 5},
            ],
        }
    )
    rng = random.Random(7)
    picks = {pick_prompt_text(prompt, _ctx(), rng) for _ in range(20)}
    assert picks == {"always Mia"}


def test_non_positive_total_weight_uses_first_variant():
    prompt = Prompt.model_validate(
        {"tts": "base", "tts_variants": [{"text": "first", "weight": 0}, {"text": "second", "weight": 0}]}
    )
    assert pick_prompt_text(prompt, _ctx(), random.Random(1)) == "first"


def test_default_weight_is_one():
    prompt = Prompt.model_validate({"tts": "base", "tts_variants": [{"text": "a"}, {"text": "b"}]})
    rng = random.Random(3)
    picks = {pick_prompt_text(prompt, _ctx(), rng) for _ in range(50)}
    assert picks == {"a", "b"}
