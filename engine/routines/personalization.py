"""Prompt personalization.

Picks a weighted prompt variant and fills ``{{ dotted.path }}`` slots from a
context object (child profile, routine id, session id and free-form extras).
Only the spoken/displayed text is affected; control flow never depends on it.

Tests: tests/test_personalization.py
"""
from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from engine.core.models import Prompt

SLOT_PATTERN = re.compile(r"{{\s*([a-zA-Z0-9_.-]+)\s*}}")


@dataclass(frozen=True)
class ChildProfile:
    id: Optional[str] = None
    display_name: Optional[str] = None
    name: Optional[str] = None
    nickname: Optional[str] = None


@dataclass(frozen=True)
class PersonalizationContext:
    child: Optional[ChildProfile] = None
    routine_id: Optional[str] = None
    session_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


ContextLike = Union[PersonalizationContext, Mapping[str, Any]]


def _resolve_path(context: Any, path: str) -> Any:
    current = context
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def personalize_text(text: Optional[str], context: ContextLike) -> str:
    """Replace every ``{{ path }}`` slot in ``text``.

    Unknown paths and ``None`` values become an empty string.
    """
    if not text:
        return ""

    def _sub(match: re.Match[str]) -> str:
        value = _resolve_path(context, match.group(1).strip())
        return "" if value is None else str(value)

    return SLOT_PATTERN.sub(_sub, text)


def _choose_variant(prompt: Prompt, rng: random.Random | None) -> Optional[str]:
    variants = prompt.tts_variants
    if not variants:
        return None
    weights = [1.0 if v.weight is None else v.weight for v in variants]
    total = sum(weights)
    if total <= 0:
        return variants[0].text
    target = (rng or random).random() * total
    cumulative = 0.0
    for variant, weight in zip(variants, weights):
        cumulative += weight
        if target <= cumulative:
            return variant.text
    return variants[-1].text


def pick_prompt_text(
    prompt: Prompt,
    context: ContextLike,
    rng: random.Random | None = None,
) -> str:
    """Return the personalized text to speak for ``prompt``."""
    variant = _choose_variant(prompt, rng)
    if variant:
        return personalize_text(variant, context)
    return personalize_text(prompt.tts, context)
