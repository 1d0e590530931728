"""Tests for the speech backend registry."""

import pytest
from unittest.mock import patch

from engine.speech_backends import ConsoleSpeechOutput, ScriptedSpeechInput, SilentSpeechOutput, StubSpeechInput
from engine.speech_backends.registry import BackendRegistry, get_backend_registry, reset_registry


class TestBackendRegistry:
    """Test cases for the BackendRegistry class."""

    def setup_method(self):
        reset_registry()

    def test_registry_initializes_lazily(self):
        registry = BackendRegistry()
        assert registry._initialized is False
        registry.list_available_backends()
        assert registry._initialized is True

    def test_known_backends_by_kind(self):
        registry = BackendRegistry()
        assert set(registry.list_available_backends("input")) == {"stub", "scripted"}
        assert set(registry.list_available_backends("output")) == {"console", "silent"}

    def test_get_backend_class(self):
        registry = BackendRegistry()
        assert registry.get_backend_class("stub") is StubSpeechInput
        assert registry.get_backend_class("scripted") is ScriptedSpeechInput
        assert registry.get_backend_class("console") is ConsoleSpeechOutput
        assert isinstance(registry.create("silent"), SilentSpeechOutput)

    def test_unknown_backend(self):
        registry = BackendRegistry()
        with pytest.raises(ValueError, match="Unknown backend 'whisper'"):
            registry.get_backend_class("whisper")

    def test_failed_backend_is_reported(self):
        registry = BackendRegistry()
        with patch("importlib.import_module", side_effect=ImportError("no module")):
            assert registry.list_available_backends() == []
        assert registry.is_backend_available("stub") is False
        with pytest.raises(ImportError, match="not available"):
            registry.get_backend_class("stub")
        assert registry.get_backend_info("stub").kind == "input"

    def test_global_registry_is_shared(self):
        assert get_backend_registry() is get_backend_registry()
        first = get_backend_registry()
        reset_registry()
        assert get_backend_registry() is not first
