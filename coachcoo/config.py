"""Runner configuration.

Defaults can be changed in ``~/.coachcoo/config.toml`` (a ``[runner]`` table),
in a ``.env`` file, or through ``COACHCOO_*`` environment variables, applied
in that order. The engine never reads any of these itself; the CLI loads a
``RunnerConfig`` and passes it to the runner.

Tests: tests/test_config.py
"""
from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv

from coachcoo.logger import get_logger

CONFIG_HOME = Path.home() / ".coachcoo"
CONFIG_FILE = CONFIG_HOME / "config.toml"

logger = get_logger(__name__)

_ENV_OVERRIDES = {
    "COACHCOO_LISTEN_TIMEOUT_MS": "listen_timeout_ms",
    "COACHCOO_AUTO_CONFIRM_MS": "auto_confirm_ms",
    "COACHCOO_LISTEN_SAFETY_MARGIN_MS": "listen_safety_margin_ms",
    "COACHCOO_LISTENER_ENABLED": "listener_enabled",
    "COACHCOO_STUB_LISTENER": "use_stub_listener",
    "COACHCOO_LOG_FAILURE_THRESHOLD": "log_failure_threshold",
    "COACHCOO_KEYWORD_MATCH_THRESHOLD": "keyword_match_threshold",
}


@dataclass(frozen=True)
class RunnerConfig:
    listen_timeout_ms: int = 15000
    auto_confirm_ms: int = 8000
    listen_safety_margin_ms: int = 250
    listener_enabled: bool = True
    use_stub_listener: bool = False
    log_failure_threshold: int = 3
    keyword_match_threshold: int = 90


def set_config_home(path: Path) -> None:
    """Update where the configuration file is looked up."""
    global CONFIG_HOME, CONFIG_FILE
    CONFIG_HOME = path
    CONFIG_FILE = CONFIG_HOME / "config.toml"


def _coerce(name: str, raw: Any) -> Any:
    field_type = {f.name: f.type for f in fields(RunnerConfig)}[name]
    if field_type == "bool":
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in {"1", "true", "yes", "on"}
    return int(raw)


def load_config(env_file: Path | None = None) -> RunnerConfig:
    """Load configuration from file, ``.env`` and environment."""
    cfg = RunnerConfig()
    values: dict[str, Any] = {}
    if CONFIG_FILE.exists():
        try:
            with CONFIG_FILE.open("rb") as fh:
                data = tomllib.load(fh)
            values.update(data.get("runner", data))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Failed to read %s: %s", CONFIG_FILE, exc)

    load_dotenv(env_file or find_dotenv(usecwd=True))
    for env_key, name in _ENV_OVERRIDES.items():
        if os.getenv(env_key) is not None:
            values[name] = os.getenv(env_key)

    known = {f.name for f in fields(RunnerConfig)}
    updates: dict[str, Any] = {}
    for name, raw in values.items():
        if name not in known:
            continue
        try:
            updates[name] = _coerce(name, raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid config value %s=%r", name, raw)
    return replace(cfg, **updates)
