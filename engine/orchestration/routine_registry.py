"""Routine registry: loading, validation and discovery of routine packs.

Routines are stored as YAML (or JSON) manifests in a directory. Each file is
validated against the :class:`~engine.core.models.Routine` model plus a few
cross-step checks (unique step ids, branch targets that exist) before it is
made available to the runner.

Tests: tests/test_routine_registry.py
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from coachcoo.logger import get_logger
from engine.core.models import Routine

logger = get_logger(__name__)

ROUTINE_SUFFIXES = (".yml", ".yaml", ".json")


@dataclass
class ValidationResult:
    """Outcome of :func:`validate_routine`."""
    routine: Optional[Routine] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.routine is not None and not self.errors


def _format_loc(loc: tuple) -> str:
    path = "/".join(str(part) for part in loc)
    return path or "(root)"


def _cross_check(routine: Routine) -> List[str]:
    errors: List[str] = []
    seen: Dict[str, int] = {}
    for index, step in enumerate(routine.steps):
        if step.id in seen:
            errors.append(f"steps/{index}/id duplicate step id '{step.id}' (first at steps/{seen[step.id]})")
        else:
            seen[step.id] = index
    for index, step in enumerate(routine.steps):
        for name in ("on_heard", "on_timeout"):
            branch = getattr(step, name)
            if branch is not None and branch.next is not None and branch.next not in seen:
                errors.append(f"steps/{index}/{name}/next unknown step id '{branch.next}'")
    return errors


def validate_routine(data: Any) -> ValidationResult:
    """Validate raw routine data.

    Errors are formatted as ``"<path> <message>"`` with ``(root)`` for
    problems at the top level.
    """
    try:
        routine = Routine.model_validate(data)
    except ValidationError as exc:
        return ValidationResult(
            errors=[f"{_format_loc(err['loc'])} {err['msg']}" for err in exc.errors()]
        )
    errors = _cross_check(routine)
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(routine=routine)


def _read_manifest(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


class RoutineLoadError(ValueError):
    """Raised when a routine file cannot be parsed or fails validation."""

    def __init__(self, path: Path, errors: List[str]):
        self.path = path
        self.errors = errors
        super().__init__(f"{path}: " + "; ".join(errors))


def load_routine_file(path: Union[str, Path]) -> Routine:
    """Read and validate a single routine manifest."""
    path = Path(path)
    try:
        data = _read_manifest(path)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
        raise RoutineLoadError(path, [f"(root) {exc}"]) from exc
    result = validate_routine(data)
    if not result.ok:
        raise RoutineLoadError(path, result.errors)
    assert result.routine is not None
    return result.routine


class RoutineRegistry:
    """Directory-backed collection of validated routines."""

    def __init__(self, routines_dir: Union[str, Path] = "routines"):
        self.routines_dir = Path(routines_dir)
        self.routines: Dict[str, Routine] = {}
        self.failures: Dict[str, List[str]] = {}
        self._load_routines()

    def _load_routines(self) -> None:
        if not self.routines_dir.exists():
            logger.debug("Routine directory %s does not exist", self.routines_dir)
            return
        for manifest_path in sorted(self.routines_dir.iterdir()):
            if manifest_path.suffix not in ROUTINE_SUFFIXES:
                continue
            try:
                routine = load_routine_file(manifest_path)
            except RoutineLoadError as e:
                self.failures[manifest_path.name] = e.errors
                logger.error(f"Failed to load routine from {manifest_path}: {e}")
                continue
            if routine.id in self.routines:
                logger.warning(f"Duplicate routine id {routine.id} in {manifest_path}; keeping first")
                continue
            self.routines[routine.id] = routine
            logger.info(f"Loaded routine: {routine.title}")

    def reload(self) -> None:
        self.routines.clear()
        self.failures.clear()
        self._load_routines()

    def list_routine_ids(self) -> List[str]:
        return sorted(self.routines)

    def get_routine(self, routine_id: str) -> Optional[Routine]:
        return self.routines.get(routine_id)

    def register_routine(self, routine: Routine) -> Path:
        """Add ``routine`` and write its YAML manifest to the directory."""
        errors = _cross_check(routine)
        if errors:
            raise RoutineLoadError(Path(f"{routine.id}.yaml"), errors)
        self.routines_dir.mkdir(parents=True, exist_ok=True)
        path = self.routines_dir / f"{routine.id}.yaml"
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(routine.to_dict(), f, sort_keys=False, allow_unicode=True)
        self.routines[routine.id] = routine
        logger.info(f"Registered routine: {routine.id}")
        return path

    def search_routines(self, query: str) -> List[Routine]:
        """Return routines whose id or title contains ``query``."""
        q = query.lower()
        return [r for r in self.routines.values() if q in r.id.lower() or q in r.title.lower()]
