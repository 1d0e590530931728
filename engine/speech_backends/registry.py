"""
Registry for speech backends.

Backends are looked up by name and imported lazily, so a backend whose
module fails to import is reported as unavailable instead of breaking the
others.

Usage:
    from engine.speech_backends.registry import get_backend_registry

    registry = get_backend_registry()
    output_cls = registry.get_backend_class("console")
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from coachcoo.logger import get_logger

logger = get_logger(__name__)


@dataclass
class BackendInfo:
    """Information about a speech backend."""
    name: str
    kind: str  # 'input' or 'output'
    class_name: str
    module_path: str
    description: str


class BackendRegistry:
    """Name-to-class registry for speech inputs and outputs."""

    def __init__(self):
        self._registered_backends: Dict[str, Type[Any]] = {}
        self._backend_info: Dict[str, BackendInfo] = {}
        self._failed_backends: Dict[str, str] = {}
        self._initialized = False

    def _get_backend_definitions(self) -> List[BackendInfo]:
        """Define all known backends."""
        return [
            BackendInfo(
                name="stub",
                kind="input",
                class_name="StubSpeechInput",
                module_path="engine.speech_backends.mock_backend",
                description="Speech input that never hears anything",
            ),
            BackendInfo(
                name="scripted",
                kind="input",
                class_name="ScriptedSpeechInput",
                module_path="engine.speech_backends.mock_backend",
                description="Speech input replaying a fixed script",
            ),
            BackendInfo(
                name="console",
                kind="output",
                class_name="ConsoleSpeechOutput",
                module_path="engine.speech_backends.console_backend",
                description="Prints prompts to the terminal",
            ),
            BackendInfo(
                name="silent",
                kind="output",
                class_name="SilentSpeechOutput",
                module_path="engine.speech_backends.mock_backend",
                description="Records prompts without output",
            ),
        ]

    def _try_load_backend(self, backend_info: BackendInfo) -> Optional[Type[Any]]:
        """Try to load a backend class, returning None if it fails."""
        try:
            module = importlib.import_module(backend_info.module_path)
            backend_class = getattr(module, backend_info.class_name)
            logger.debug("Loaded speech backend: %s", backend_info.name)
            return backend_class
        except (ImportError, AttributeError) as e:
            error_msg = f"Failed to load {backend_info.name}: {e}"
            logger.debug(error_msg)
            self._failed_backends[backend_info.name] = error_msg
            return None

    def _initialize_registry(self) -> None:
        if self._initialized:
            return
        for backend_info in self._get_backend_definitions():
            self._backend_info[backend_info.name] = backend_info
            backend_class = self._try_load_backend(backend_info)
            if backend_class is not None:
                self._registered_backends[backend_info.name] = backend_class
        if not self._registered_backends:
            logger.warning("No speech backends are available")
        self._initialized = True

    def list_available_backends(self, kind: Optional[str] = None) -> List[str]:
        """Return the names of loadable backends, optionally of one kind."""
        self._initialize_registry()
        return [
            name
            for name in self._registered_backends
            if kind is None or self._backend_info[name].kind == kind
        ]

    def get_backend_class(self, backend_name: str) -> Type[Any]:
        """Get a backend class by name, raising an error if not available."""
        self._initialize_registry()
        if backend_name not in self._registered_backends:
            if backend_name in self._failed_backends:
                raise ImportError(
                    f"Backend '{backend_name}' is not available: {self._failed_backends[backend_name]}"
                )
            available = ", ".join(self._registered_backends.keys())
            raise ValueError(f"Unknown backend '{backend_name}'. Available backends: {available}")
        return self._registered_backends[backend_name]

    def create(self, backend_name: str, **kwargs: Any) -> Any:
        """Instantiate the backend registered as ``backend_name``."""
        return self.get_backend_class(backend_name)(**kwargs)

    def get_backend_info(self, backend_name: str) -> Optional[BackendInfo]:
        self._initialize_registry()
        return self._backend_info.get(backend_name)

    def is_backend_available(self, backend_name: str) -> bool:
        self._initialize_registry()
        return backend_name in self._registered_backends


# Global registry instance
_registry_instance: Optional[BackendRegistry] = None


def get_backend_registry() -> BackendRegistry:
    """Get the global backend registry instance."""
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = BackendRegistry()
    return _registry_instance


def reset_registry() -> None:
    """Reset the global registry instance (primarily for testing)."""
    global _registry_instance
    _registry_instance = None
