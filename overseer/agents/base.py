"""Base class for guarded generative agents.

A guarded agent makes exactly one model call per request and then runs the
reply through a deterministic guard. The guard enforces hard limits no
matter what the model asserted, and degrades to the raw text with no
actions when the reply cannot be parsed.

Only the model call may raise out of an agent. Provider errors are
recorded and re-raised; nothing here retries.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from overseer.adapters.llm import LLMProvider, Message, Purpose
from overseer.core.config import GuardConfig
from overseer.core.events import EventType
from overseer.core.models import AgentResponse, Ticket, TicketReply, WorkItem
from overseer.core.stores import EventSink

logger = logging.getLogger(__name__)


@dataclass
class AgentContext:
    """What an agent knows about the request beyond the message itself.

    Attributes:
        task: Work item the request concerns, if any
        ticket: Ticket the request concerns, if any
        replies: Replies already on the ticket, oldest first
        extra: Additional labeled context rendered into the prompt
    """

    task: Optional[WorkItem] = None
    ticket: Optional[Ticket] = None
    replies: list[TicketReply] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


class GuardedAgent(ABC):
    """One model call, then a deterministic guard over the reply.

    Subclasses set ``name``, ``purpose`` and ``system_prompt`` and
    implement ``_guard``.
    """

    name: str = "agent"
    purpose: Purpose = Purpose.ANSWER
    system_prompt: str = ""
    max_tokens: int = 2048

    def __init__(
        self,
        provider: LLMProvider,
        config: Optional[GuardConfig] = None,
        events: Optional[EventSink] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the agent.

        Args:
            provider: Model client
            config: Guard limits (defaults when None)
            events: Optional audit sink for overrides and escalations
            timeout: Seconds before the model call is abandoned
        """
        self.provider = provider
        self.config = config or GuardConfig()
        self.events = events
        self.timeout = timeout

    def respond(self, message: str, context: Optional[AgentContext] = None) -> AgentResponse:
        """Ask the model and guard its reply.

        Args:
            message: The request for the model
            context: Task/ticket context rendered ahead of the message

        Returns:
            Guarded AgentResponse with token usage attached

        Raises:
            Exception: Whatever the provider raised
        """
        context = context or AgentContext()
        prompt = self.build_prompt(message, context)

        try:
            llm_response = self.provider.complete(
                messages=[Message(role="user", content=prompt).to_dict()],
                purpose=self.purpose,
                max_tokens=self.max_tokens,
                system=self.system_prompt or None,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"{self.name} model call failed: {e}", exc_info=True)
            self.record(EventType.AGENT_ERROR, str(e))
            raise

        logger.debug(
            f"{self.name} token usage - Input: {llm_response.input_tokens}, "
            f"Output: {llm_response.output_tokens}"
        )

        response = self.guard(llm_response.content, context)
        response.tokens_used = llm_response.tokens_used
        return response

    def guard(self, content: str, context: Optional[AgentContext] = None) -> AgentResponse:
        """Validate a raw reply and derive actions. Never raises.

        Args:
            content: Raw model text
            context: Request context

        Returns:
            Guarded AgentResponse; raw text with no actions if the reply
            could not be interpreted
        """
        if not isinstance(content, str):
            content = "" if content is None else str(content)
        try:
            return self._guard(content, context or AgentContext())
        except Exception as e:
            logger.warning(f"{self.name} could not interpret reply, returning raw text: {e}")
            self.record(EventType.PARSE_FALLBACK, str(e))
            return AgentResponse(content=content)

    @abstractmethod
    def _guard(self, content: str, context: AgentContext) -> AgentResponse:
        """Role-specific parsing and invariant enforcement."""
        pass

    def build_prompt(self, message: str, context: AgentContext) -> str:
        """Render context sections ahead of the message."""
        sections = []

        task = context.task
        if task is not None:
            lines = [f"Task: {task.title}"]
            if task.id:
                lines.append(f"Task ID: {task.id}")
            if task.description:
                lines.append(f"Description: {task.description}")
            if task.acceptance_criteria:
                lines.append(f"Acceptance criteria: {task.acceptance_criteria}")
            if task.files:
                lines.append(f"Files: {', '.join(str(f) for f in task.files)}")
            sections.append("\n".join(lines))

        ticket = context.ticket
        if ticket is not None:
            lines = [f"Ticket {ticket.label}: {ticket.title}", f"Status: {ticket.status.value}"]
            if ticket.body:
                lines.append(f"Body: {ticket.body}")
            sections.append("\n".join(lines))

        if context.replies:
            history = "\n".join(f"- {r.author}: {r.body}" for r in context.replies[-10:])
            sections.append(f"Replies so far:\n{history}")

        for key, value in context.extra.items():
            sections.append(f"{key}: {value}")

        sections.append(message)
        return "\n\n".join(sections)

    def record(self, action: str, detail: str) -> None:
        """Record an audit entry if a sink is configured."""
        if self.events is not None:
            self.events.record(self.name, action, detail)
