"""Logging utilities for coachcoo.

This module provides ``get_logger`` for unified log configuration. Levels are
read per module from an optional YAML file; every logger writes to a file
under ``LOG_DIR`` and to stderr.

Tests: tests/test_logger.py
Operational: logging_config.yaml
"""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml

# Paths configurable for tests
CONFIG_PATH = Path(os.getenv("COACHCOO_LOG_CONFIG", "logging_config.yaml"))
LOG_DIR = Path(os.getenv("COACHCOO_LOG_DIR", "logs"))

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"

_LOG_CONFIG: Optional[dict] = None


def _load_config() -> dict:
    global _LOG_CONFIG
    if _LOG_CONFIG is not None:
        return _LOG_CONFIG
    if CONFIG_PATH.exists():
        try:
            _LOG_CONFIG = yaml.safe_load(CONFIG_PATH.read_text()) or {}
        except yaml.YAMLError:
            _LOG_CONFIG = {}
    else:
        _LOG_CONFIG = {}
    return _LOG_CONFIG


def reset_config() -> None:
    """Forget the cached YAML config so the next ``get_logger`` re-reads it."""
    global _LOG_CONFIG
    _LOG_CONFIG = None


def get_logger(name: str) -> logging.Logger:
    cfg = _load_config()
    logger = logging.getLogger(name)
    if not logger.handlers:
        fmt = logging.Formatter(LOG_FORMAT)
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(LOG_DIR / f"{name}.log")
            fh.setFormatter(fmt)
            logger.addHandler(fh)
        except OSError:
            # read-only working directory; stderr only
            pass
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        logger.addHandler(sh)
    modules = cfg.get("modules") or {}
    level = modules.get(name, cfg.get("default_level", "INFO"))
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    if cfg.get("suppress_debug") and lvl < logging.INFO:
        lvl = logging.INFO
    logger.setLevel(lvl)
    return logger
