"""Model client seam for the guarded agents.

Agents talk to an LLMProvider only. The Anthropic provider is the production
client; the mock provider serves scripted replies to tests.

Usage:
    from overseer.adapters.llm import provider_from_settings
    from overseer.core.config import load_settings

    provider = provider_from_settings(load_settings())
"""

from typing import TYPE_CHECKING, Optional

from overseer.adapters.llm.base import (
    LLMProvider,
    LLMResponse,
    Message,
    ModelSelector,
    Purpose,
)
from overseer.adapters.llm.anthropic import AnthropicProvider
from overseer.adapters.llm.mock import MockProvider, labeled_text

if TYPE_CHECKING:
    from overseer.core.config import OverseerSettings

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "Message",
    "ModelSelector",
    "Purpose",
    "AnthropicProvider",
    "MockProvider",
    "labeled_text",
    "get_provider",
    "provider_from_settings",
]


def get_provider(
    provider_type: str = "anthropic",
    timeout: Optional[float] = None,
    api_key: Optional[str] = None,
) -> LLMProvider:
    """Build a provider by name.

    Args:
        provider_type: "anthropic" or "mock"
        timeout: Default per-call timeout in seconds (anthropic only)
        api_key: API key; the anthropic provider falls back to ANTHROPIC_API_KEY

    Raises:
        ValueError: If the provider type is unknown, or anthropic has no key
    """
    if provider_type == "anthropic":
        return AnthropicProvider(api_key=api_key, default_timeout=timeout)
    if provider_type == "mock":
        return MockProvider()
    raise ValueError(f"Unknown provider type: {provider_type}")


def provider_from_settings(settings: "OverseerSettings") -> LLMProvider:
    """Build the provider named by loaded settings.

    Uses ``provider``, ``model_timeout`` and ``anthropic_api_key``.
    """
    return get_provider(
        settings.provider,
        timeout=settings.model_timeout,
        api_key=settings.anthropic_api_key,
    )
