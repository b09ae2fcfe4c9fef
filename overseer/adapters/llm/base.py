"""Base LLM adapter interface.

Defines the protocol that all model providers must implement,
along with shared data structures for requests and responses.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Purpose(str, Enum):
    """Agent role making an LLM call, used for model selection."""

    ANSWER = "answer"  # Evidence-backed Q&A
    VERIFICATION = "verification"  # Pass/fail verdicts against criteria
    CLARITY = "clarity"  # Scoring ticket replies
    HEALTH = "health"  # Narrating detected health issues


# Default model aliases (use latest versions automatically)
DEFAULT_ANSWER_MODEL = "claude-sonnet-4-5"
DEFAULT_VERIFICATION_MODEL = "claude-sonnet-4-5"
DEFAULT_CLARITY_MODEL = "claude-haiku-4-5"
DEFAULT_HEALTH_MODEL = "claude-haiku-4-5"


@dataclass
class ModelSelector:
    """Role-based model selection.

    Model names can be overridden via environment variables:
    - OVERSEER_ANSWER_MODEL
    - OVERSEER_VERIFICATION_MODEL
    - OVERSEER_CLARITY_MODEL
    - OVERSEER_HEALTH_MODEL

    Explicit constructor arguments win over the environment.
    """

    answer_model: str = ""
    verification_model: str = ""
    clarity_model: str = ""
    health_model: str = ""

    def __post_init__(self):
        """Fill unset model names from environment or defaults."""
        self.answer_model = self.answer_model or os.getenv(
            "OVERSEER_ANSWER_MODEL", DEFAULT_ANSWER_MODEL
        )
        self.verification_model = self.verification_model or os.getenv(
            "OVERSEER_VERIFICATION_MODEL", DEFAULT_VERIFICATION_MODEL
        )
        self.clarity_model = self.clarity_model or os.getenv(
            "OVERSEER_CLARITY_MODEL", DEFAULT_CLARITY_MODEL
        )
        self.health_model = self.health_model or os.getenv(
            "OVERSEER_HEALTH_MODEL", DEFAULT_HEALTH_MODEL
        )

    def for_purpose(self, purpose: Purpose) -> str:
        """Get the model for a given purpose.

        Args:
            purpose: The role making the LLM call

        Returns:
            Model identifier string
        """
        if purpose == Purpose.ANSWER:
            return self.answer_model
        elif purpose == Purpose.VERIFICATION:
            return self.verification_model
        elif purpose == Purpose.CLARITY:
            return self.clarity_model
        elif purpose == Purpose.HEALTH:
            return self.health_model
        else:
            return self.answer_model  # Default fallback


@dataclass
class LLMResponse:
    """Response from an LLM completion.

    Attributes:
        content: Text content of the response
        stop_reason: Why the model stopped generating
        model: Model that generated this response
        input_tokens: Number of input tokens used
        output_tokens: Number of output tokens generated
    """

    content: str
    stop_reason: str = "end_turn"
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def tokens_used(self) -> int:
        """Total tokens consumed by the call."""
        return self.input_tokens + self.output_tokens


@dataclass
class Message:
    """A message in a conversation.

    Attributes:
        role: Message role ("user", "assistant")
        content: Message content
    """

    role: str
    content: str

    def to_dict(self) -> dict:
        """Convert to dict format for API calls."""
        return {"role": self.role, "content": self.content}


class LLMProvider(ABC):
    """Abstract base class for model providers.

    The decision layer treats a provider as opaque: one complete() call per
    pipeline invocation, with no retries on this side of the seam.
    """

    def __init__(self, model_selector: Optional[ModelSelector] = None):
        """Initialize the provider.

        Args:
            model_selector: Custom model selector (uses defaults if None)
        """
        self.model_selector = model_selector or ModelSelector()

    @abstractmethod
    def complete(
        self,
        messages: list[dict],
        purpose: Purpose = Purpose.ANSWER,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        system: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Generate a completion.

        Args:
            messages: Conversation messages
            purpose: Role making the call (for model selection)
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            system: System prompt
            timeout: Seconds before the call is abandoned (provider default if None)

        Returns:
            LLMResponse with content and token usage
        """
        pass

    def get_model(self, purpose: Purpose) -> str:
        """Get the model for a given purpose.

        Args:
            purpose: The role making the LLM call

        Returns:
            Model identifier string
        """
        return self.model_selector.for_purpose(purpose)
