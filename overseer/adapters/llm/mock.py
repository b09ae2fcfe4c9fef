"""Scripted model provider for tests and offline runs.

Replies are served from a script: canned responses and one-shot errors are
consumed in order, then a default reply is returned. Every call is recorded
before anything is served, so tests can assert on calls that raised.

Usage:
    >>> provider = MockProvider()
    >>> provider.add_labeled_response(ANSWER="Retries live in client.py", CONFIDENCE=90)
    >>> provider.add_error(TimeoutError("slow"))
"""

from collections import deque
from typing import Any, Callable, Optional, Union

from overseer.adapters.llm.base import (
    LLMProvider,
    LLMResponse,
    ModelSelector,
    Purpose,
)

ResponseHandler = Callable[[list[dict]], LLMResponse]


def labeled_text(**fields: Any) -> str:
    """Render ``LABEL: value`` lines in the shape guarded agents parse.

    Lists are joined with commas and booleans are written lowercase.
    """
    lines = []
    for label, value in fields.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value) or "none"
        lines.append(f"{label.upper()}: {value}")
    return "\n".join(lines)


class MockProvider(LLMProvider):
    """Provider that never leaves the process.

    A response handler, when set, answers every call. Otherwise the script
    is consumed in order and the default reply follows once it runs dry.
    ``fail_with`` makes every call raise until ``reset``.
    """

    def __init__(
        self,
        default_response: str = "Mock response",
        model_selector: Optional[ModelSelector] = None,
    ):
        super().__init__(model_selector)
        self.default_response = default_response
        self.calls: list[dict] = []
        self.script: deque[Union[LLMResponse, Exception]] = deque()
        self.response_handler: Optional[ResponseHandler] = None
        self.error: Optional[Exception] = None

    def add_response(self, response: LLMResponse) -> None:
        self.script.append(response)

    def add_text_response(self, content: str) -> None:
        self.script.append(LLMResponse(content=content))

    def add_labeled_response(self, **fields: Any) -> None:
        """Queue a labeled-field reply, e.g. ``SCORE=92, ASSESSMENT="clear"``."""
        self.script.append(LLMResponse(content=labeled_text(**fields)))

    def add_error(self, error: Exception) -> None:
        """Queue a one-shot failure at this point in the script."""
        self.script.append(error)

    def set_response_handler(self, handler: ResponseHandler) -> None:
        """Answer every call with ``handler(messages)``, ignoring the script."""
        self.response_handler = handler

    def fail_with(self, error: Exception) -> None:
        """Raise ``error`` on every call until reset."""
        self.error = error

    def complete(
        self,
        messages: list[dict],
        purpose: Purpose = Purpose.ANSWER,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        system: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Record the call, then serve from handler, script or default.

        Raises:
            Exception: The persistent failure, or a queued one-shot error
        """
        model = self.get_model(purpose)
        self.calls.append(
            {
                "messages": messages,
                "purpose": purpose,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "system": system,
                "timeout": timeout,
                "model": model,
            }
        )

        if self.error is not None:
            raise self.error
        if self.response_handler is not None:
            return self.response_handler(messages)
        if self.script:
            entry = self.script.popleft()
            if isinstance(entry, Exception):
                raise entry
            return entry

        return LLMResponse(
            content=self.default_response,
            model=model,
            input_tokens=sum(len(str(m.get("content", ""))) for m in messages),
            output_tokens=len(self.default_response),
        )

    def reset(self) -> None:
        """Forget calls, script, handler and persistent failure."""
        self.calls.clear()
        self.script.clear()
        self.response_handler = None
        self.error = None

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_call(self) -> Optional[dict]:
        return self.calls[-1] if self.calls else None
