"""Anthropic LLM provider implementation.

Provides Claude model access via the Anthropic API.
"""

import os
from typing import Optional

from overseer.adapters.llm.base import (
    LLMProvider,
    LLMResponse,
    ModelSelector,
    Purpose,
)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider.

    Uses the Anthropic Python SDK to make API calls. The SDK's own retry
    policy applies; nothing here retries.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_selector: Optional[ModelSelector] = None,
        default_timeout: Optional[float] = None,
    ):
        """Initialize the Anthropic provider.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            model_selector: Custom model selector
            default_timeout: Timeout in seconds used when a call passes none

        Raises:
            ValueError: If no API key is available
        """
        super().__init__(model_selector)
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY not set. "
                "Set the environment variable or pass api_key parameter."
            )
        self.default_timeout = default_timeout
        self._client = None

    @property
    def client(self):
        """Lazy-load the Anthropic client."""
        if self._client is None:
            from anthropic import Anthropic

            self._client = Anthropic(api_key=self.api_key)
        return self._client

    def complete(
        self,
        messages: list[dict],
        purpose: Purpose = Purpose.ANSWER,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        system: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Generate a completion using Claude.

        Args:
            messages: Conversation messages
            purpose: Role making the call (for model selection)
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            system: System prompt
            timeout: Seconds before the request is abandoned

        Returns:
            LLMResponse with content and token usage
        """
        model = self.get_model(purpose)

        # Build request kwargs
        kwargs = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": self._convert_messages(messages),
        }

        if temperature > 0:
            kwargs["temperature"] = temperature

        if system:
            kwargs["system"] = system

        effective_timeout = timeout if timeout is not None else self.default_timeout
        if effective_timeout is not None:
            kwargs["timeout"] = effective_timeout

        response = self.client.messages.create(**kwargs)

        return self._parse_response(response)

    def _convert_messages(self, messages: list[dict]) -> list[dict]:
        """Convert messages to Anthropic format.

        System-role entries are folded into user turns since the Messages API
        only accepts system text through the ``system`` parameter.
        """
        converted = []
        for msg in messages:
            role = msg.get("role", "user")
            if role not in ("user", "assistant"):
                role = "user"
            converted.append({"role": role, "content": msg.get("content", "")})
        return converted

    def _parse_response(self, response) -> LLMResponse:
        """Parse Anthropic response into LLMResponse."""
        content = ""

        for block in response.content:
            if block.type == "text":
                content += block.text

        return LLMResponse(
            content=content,
            stop_reason=response.stop_reason,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
