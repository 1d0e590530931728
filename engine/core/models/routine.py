"""Routine definition models.

A routine is loaded once from YAML/JSON and never mutated afterwards, so every
model here is frozen and step lists are held as tuples.

Tests: tests/core/test_routine_models.py
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, conint


class PromptVariant(BaseModel):
    """Alternative prompt text picked by weight."""

    text: str
    weight: Optional[float] = None

    model_config = {"frozen": True}


class Prompt(BaseModel):
    tts: str
    tts_variants: Tuple[PromptVariant, ...] = ()
    anim: Optional[str] = None
    ssml: bool = False

    model_config = {"frozen": True}


class Listen(BaseModel):
    timeout_ms: Optional[conint(gt=0)] = None
    keywords: Tuple[str, ...] = ()

    model_config = {"frozen": True}


class BranchRetry(BaseModel):
    max: Optional[conint(ge=1)] = None
    prompt_override: Optional[Prompt] = None

    model_config = {"frozen": True}


class BranchCelebrate(BaseModel):
    anim: Optional[str] = None
    tts: Optional[str] = None

    model_config = {"frozen": True}


class BranchReward(BaseModel):
    points: Optional[int] = None
    sticker: Optional[str] = None

    model_config = {"frozen": True}


class Branch(BaseModel):
    """Where to go after a step resolves.

    ``next`` absent means fall through to the following step in definition
    order. ``celebrate`` and ``reward`` are informational and only surfaced to
    observers.
    """

    next: Optional[str] = None
    retry: Optional[BranchRetry] = None
    celebrate: Optional[BranchCelebrate] = None
    reward: Optional[BranchReward] = None

    model_config = {"frozen": True}


class StepShaping(BaseModel):
    required_successes: Optional[conint(ge=1)] = None
    max_attempts: Optional[conint(ge=1)] = None

    model_config = {"frozen": True}


class Step(BaseModel):
    id: str = Field(min_length=1)
    prompt: Prompt
    listen: Optional[Listen] = None
    on_heard: Optional[Branch] = None
    on_timeout: Optional[Branch] = None
    shaping: Optional[StepShaping] = None

    model_config = {"frozen": True}


class GlobalListen(BaseModel):
    timeout_ms: Optional[conint(gt=0)] = None

    model_config = {"frozen": True}


class RoutineGlobals(BaseModel):
    listen: Optional[GlobalListen] = None
    reinforcement: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class Routine(BaseModel):
    """Complete routine definition: an ordered list of steps."""

    id: str = Field(min_length=1)
    title: str
    steps: Tuple[Step, ...] = ()
    globals: Optional[RoutineGlobals] = None

    model_config = {"frozen": True}

    def step_ids(self) -> list[str]:
        return [step.id for step in self.steps]

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain mapping suitable for YAML or JSON output."""
        return self.model_dump(mode="json", exclude_none=True)
