from .adapters import (
    EventLogger,
    LogEvent,
    LogEventType,
    RecognitionResult,
    SpeechInput,
    SpeechOutput,
)

__all__ = [
    "EventLogger",
    "LogEvent",
    "LogEventType",
    "RecognitionResult",
    "SpeechInput",
    "SpeechOutput",
]
