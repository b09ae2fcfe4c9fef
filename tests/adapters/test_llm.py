"""Tests for LLM adapters."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from overseer.adapters.llm import (
    AnthropicProvider,
    LLMResponse,
    Message,
    MockProvider,
    ModelSelector,
    Purpose,
    get_provider,
    provider_from_settings,
)
from overseer.core.config import OverseerSettings


class TestModelSelector:
    """Tests for ModelSelector."""

    def test_default_models(self, monkeypatch):
        """Default models are set correctly."""
        for role in ("ANSWER", "VERIFICATION", "CLARITY", "HEALTH"):
            monkeypatch.delenv(f"OVERSEER_{role}_MODEL", raising=False)
        selector = ModelSelector()
        assert "sonnet" in selector.answer_model
        assert "sonnet" in selector.verification_model
        assert "haiku" in selector.clarity_model
        assert "haiku" in selector.health_model

    def test_for_purpose(self):
        """Each purpose maps to its role's model."""
        selector = ModelSelector(
            answer_model="a",
            verification_model="v",
            clarity_model="c",
            health_model="h",
        )
        assert selector.for_purpose(Purpose.ANSWER) == "a"
        assert selector.for_purpose(Purpose.VERIFICATION) == "v"
        assert selector.for_purpose(Purpose.CLARITY) == "c"
        assert selector.for_purpose(Purpose.HEALTH) == "h"

    def test_env_override(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv("OVERSEER_CLARITY_MODEL", "custom-clarity")
        assert ModelSelector().clarity_model == "custom-clarity"


class TestLLMResponse:
    """Tests for LLMResponse."""

    def test_tokens_used(self):
        response = LLMResponse(content="x", input_tokens=10, output_tokens=5)
        assert response.tokens_used == 15

    def test_message_to_dict(self):
        assert Message(role="user", content="hi").to_dict() == {"role": "user", "content": "hi"}


class TestMockProvider:
    """Tests for MockProvider."""

    def test_default_response(self):
        """Returns default response when no queue."""
        provider = MockProvider(default_response="Hello")
        response = provider.complete([{"role": "user", "content": "Hi"}])
        assert response.content == "Hello"

    def test_tracks_calls(self):
        """Tracks all calls made."""
        provider = MockProvider()
        provider.complete([{"role": "user", "content": "First"}], timeout=5)
        provider.complete([{"role": "user", "content": "Second"}], system="sys")
        assert provider.call_count == 2
        assert provider.calls[0]["messages"][0]["content"] == "First"
        assert provider.calls[0]["timeout"] == 5
        assert provider.calls[1]["system"] == "sys"

    def test_last_call(self):
        """Returns the most recent call."""
        provider = MockProvider()
        assert provider.last_call is None
        provider.complete([{"role": "user", "content": "Test"}], purpose=Purpose.VERIFICATION)
        assert provider.last_call["purpose"] == Purpose.VERIFICATION

    def test_queued_responses(self):
        """Returns queued responses in order."""
        provider = MockProvider()
        provider.add_text_response("First")
        provider.add_text_response("Second")

        assert provider.complete([]).content == "First"
        assert provider.complete([]).content == "Second"
        assert provider.complete([]).content == "Mock response"

    def test_custom_handler(self):
        """Custom handler generates dynamic responses."""
        provider = MockProvider()
        provider.set_response_handler(
            lambda messages: LLMResponse(content=f"Echo: {messages[-1]['content']}")
        )
        assert provider.complete([{"role": "user", "content": "ping"}]).content == "Echo: ping"

    def test_fail_with(self):
        """Injected failures raise after the call is tracked."""
        provider = MockProvider()
        provider.fail_with(TimeoutError("slow"))
        with pytest.raises(TimeoutError):
            provider.complete([])
        assert provider.call_count == 1

    def test_labeled_response(self):
        """Labeled replies render in the shape the agents parse."""
        provider = MockProvider()
        provider.add_labeled_response(ANSWER="Use the cache", CONFIDENCE=80, SOURCES=[], ESCALATE=False)
        assert provider.complete([]).content == (
            "ANSWER: Use the cache\nCONFIDENCE: 80\nSOURCES: none\nESCALATE: false"
        )

    def test_one_shot_error_in_script(self):
        """A queued error raises once, then the script continues."""
        provider = MockProvider()
        provider.add_error(ConnectionError("dropped"))
        provider.add_text_response("recovered")

        with pytest.raises(ConnectionError):
            provider.complete([])
        assert provider.complete([]).content == "recovered"
        assert provider.call_count == 2

    def test_reset(self):
        provider = MockProvider()
        provider.add_text_response("queued")
        provider.fail_with(RuntimeError("x"))
        provider.reset()
        assert provider.call_count == 0
        assert provider.complete([]).content == "Mock response"


class TestAnthropicProvider:
    """Tests for AnthropicProvider without network access."""

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            AnthropicProvider()

    def _provider_with_client(self, **kwargs):
        provider = AnthropicProvider(api_key="sk-test", **kwargs)
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Hello "),
                SimpleNamespace(type="text", text="world"),
            ],
            stop_reason="end_turn",
            model="claude-test",
            usage=SimpleNamespace(input_tokens=12, output_tokens=3),
        )
        provider._client = client
        return provider, client

    def test_complete_parses_response(self):
        provider, _ = self._provider_with_client()
        response = provider.complete([{"role": "user", "content": "Hi"}])
        assert response.content == "Hello world"
        assert response.model == "claude-test"
        assert response.tokens_used == 15

    def test_request_arguments(self):
        provider, client = self._provider_with_client(
            model_selector=ModelSelector(health_model="health-model")
        )
        provider.complete(
            [{"role": "system", "content": "ctx"}, {"role": "user", "content": "Hi"}],
            purpose=Purpose.HEALTH,
            system="Be terse",
            timeout=20,
        )
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "health-model"
        assert kwargs["system"] == "Be terse"
        assert kwargs["timeout"] == 20
        assert kwargs["messages"][0]["role"] == "user"
        assert "temperature" not in kwargs

    def test_default_timeout(self):
        provider, client = self._provider_with_client(default_timeout=45)
        provider.complete([{"role": "user", "content": "Hi"}])
        assert client.messages.create.call_args.kwargs["timeout"] == 45


class TestGetProvider:
    """Tests for get_provider factory."""

    def test_mock(self):
        assert isinstance(get_provider("mock"), MockProvider)

    def test_anthropic(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        provider = get_provider("anthropic", timeout=10)
        assert isinstance(provider, AnthropicProvider)
        assert provider.default_timeout == 10

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown provider type"):
            get_provider("unknown")

    def test_from_settings(self):
        """Settings choose the provider, its key and its timeout."""
        settings = OverseerSettings(provider="anthropic", anthropic_api_key="sk-settings", model_timeout=25)

        provider = provider_from_settings(settings)

        assert isinstance(provider, AnthropicProvider)
        assert provider.api_key == "sk-settings"
        assert provider.default_timeout == 25

    def test_mock_from_settings(self):
        assert isinstance(provider_from_settings(OverseerSettings(provider="mock")), MockProvider)
