from .mock_backend import ScriptedSpeechInput, SilentSpeechOutput, StubSpeechInput
from .console_backend import ConsoleSpeechOutput
from .registry import BackendRegistry, get_backend_registry

__all__ = [
    "BackendRegistry",
    "ConsoleSpeechOutput",
    "ScriptedSpeechInput",
    "SilentSpeechOutput",
    "StubSpeechInput",
    "get_backend_registry",
]
