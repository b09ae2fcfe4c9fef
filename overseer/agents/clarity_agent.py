"""Clarity review of ticket replies with a hard round limit.

Each review scores a reply 0-100. A ticket that has already been through
the maximum number of clarification rounds is escalated to a human without
another model call.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from overseer.adapters.llm import Purpose
from overseer.agents.base import AgentContext, GuardedAgent
from overseer.agents.fields import FieldSchema, FieldSpec, parse_int, parse_text
from overseer.core.events import EventType
from overseer.core.models import (
    ActionType,
    AgentAction,
    AgentResponse,
    Ticket,
    TicketReply,
    TicketStatus,
)

logger = logging.getLogger(__name__)

ROUND_LIMIT_FEEDBACK = "Maximum clarification rounds reached. Escalating."

SYSTEM_PROMPT = """You review ticket replies and score them for clarity, completeness and actionability. A reply that reaches a coding agent must contain zero ambiguity.

Scoring:
- 85-100 (clear): the reply fully answers the question and can be acted on immediately.
- 70-84: mostly answers the question; ask ONE specific follow-up question.
- 0-69: incomplete, contradictory or too vague; ask up to 3 specific follow-up questions.

Respond in exactly this format, each field on its own line:

SCORE: [Integer 0-100]
ASSESSMENT: [clear OR needs_clarification]
FEEDBACK: [If needs_clarification: specific questions numbered 1-3. If clear: "No issues, reply is actionable."]

Never ask "can you elaborate?". Each question must name what was unclear."""


class ClarificationTracker:
    """Per-ticket clarification round counter.

    Counts only go up. Thread-safe.
    """

    def __init__(self):
        self._rounds: dict[str, int] = {}
        self._lock = threading.Lock()

    def rounds(self, ticket_id: str) -> int:
        """Rounds recorded for a ticket."""
        with self._lock:
            return self._rounds.get(ticket_id, 0)

    def record(self, ticket_id: str) -> int:
        """Record one more round and return the new count."""
        with self._lock:
            count = self._rounds.get(ticket_id, 0) + 1
            self._rounds[ticket_id] = count
            return count

    def observe(self, ticket_id: str, count: int) -> int:
        """Raise the counter to a known round count, never lowering it.

        Returns:
            The count after observing
        """
        with self._lock:
            current = max(self._rounds.get(ticket_id, 0), count)
            self._rounds[ticket_id] = current
            return current


@dataclass
class ClarityReview:
    """Outcome of reviewing one reply.

    Attributes:
        score: Clarity score 0-100 (0 when escalated without review)
        clear: Whether the reply passed
        feedback: Follow-up questions or confirmation
        escalated: Whether the ticket was force-escalated
        response: The guarded agent response with its actions
    """

    score: int
    clear: bool
    feedback: str
    escalated: bool
    response: AgentResponse


class ClarityAgent(GuardedAgent):
    """Scores ticket replies and escalates endless clarification loops."""

    name = "clarity-agent"
    purpose = Purpose.CLARITY
    system_prompt = SYSTEM_PROMPT
    max_tokens = 1024

    def __init__(self, *args, tracker: Optional[ClarificationTracker] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.tracker = tracker or ClarificationTracker()
        self.schema = FieldSchema([
            FieldSpec("SCORE", parse_int(0, 100), self.config.default_clarity_score),
            FieldSpec("ASSESSMENT", parse_text, None),
            FieldSpec("FEEDBACK", parse_text, ""),
        ])

    def review_reply(
        self,
        ticket: Ticket,
        reply_body: str,
        replies: Optional[list[TicketReply]] = None,
    ) -> ClarityReview:
        """Review a reply on a ticket.

        Args:
            ticket: Ticket the reply belongs to
            reply_body: Reply text to score
            replies: Replies already on the ticket

        Returns:
            ClarityReview

        Raises:
            Exception: Whatever the provider raised
        """
        replies = list(replies or [])
        prior_rounds = sum(1 for r in replies if r.author == self.name)
        rounds = self.tracker.observe(ticket.id, prior_rounds)

        if rounds >= self.config.max_clarification_rounds:
            return self._escalate(ticket, rounds)

        message = (
            "Review this ticket reply for clarity and completeness:\n\n"
            f"Ticket: {ticket.title}\n"
            f"Original question: {ticket.body}\n"
            f"Reply: {reply_body}"
        )
        response = self.respond(message, AgentContext(ticket=ticket, replies=replies))

        round_number = self.tracker.record(ticket.id)
        self.record(
            EventType.CLARIFICATION_ROUND,
            f"{ticket.label} round {round_number}: score {response.confidence}",
        )

        return ClarityReview(
            score=response.details.get("score", self.config.default_clarity_score),
            clear=response.details.get("clear", False),
            feedback=response.details.get("feedback", ""),
            escalated=False,
            response=response,
        )

    def _guard(self, content: str, context: AgentContext) -> AgentResponse:
        parsed = self.schema.parse(content)
        if not parsed.recovered:
            logger.warning(f"{self.name} reply had no recognizable fields, returning raw text")
            self.record(EventType.PARSE_FALLBACK, "no fields recovered")
            return AgentResponse(content=content, details={"missing": parsed.missing})

        score = parsed.get("SCORE")
        feedback = parsed.get("FEEDBACK") or ""
        clear = score >= self.config.clarity_pass_score

        actions = []
        ticket = context.ticket
        if ticket is not None:
            body = f"Clear ({score}/100)" if clear else f"Needs clarification ({score}/100): {feedback}"
            status = TicketStatus.RESOLVED if clear else TicketStatus.IN_REVIEW
            actions = [
                AgentAction(
                    type=ActionType.ADD_REPLY,
                    payload={
                        "ticket_id": ticket.id,
                        "author": self.name,
                        "body": body,
                        "clarity_score": score,
                    },
                ),
                AgentAction(
                    type=ActionType.UPDATE_TICKET,
                    payload={"ticket_id": ticket.id, "status": status.value},
                ),
            ]

        return AgentResponse(
            content=feedback or content,
            confidence=score,
            actions=actions,
            details={
                "score": score,
                "clear": clear,
                "feedback": feedback,
                "assessment": parsed.get("ASSESSMENT"),
                "missing": parsed.missing,
                "defaulted": parsed.defaulted,
            },
        )

    def _escalate(self, ticket: Ticket, rounds: int) -> ClarityReview:
        """Force-escalate a ticket that hit the round limit."""
        detail = f"Ticket {ticket.label} escalated after {rounds} clarification rounds"
        logger.info(detail)
        self.record(EventType.CLARIFICATION_LIMIT, detail)

        response = AgentResponse(
            content=ROUND_LIMIT_FEEDBACK,
            escalated=True,
            actions=[
                AgentAction(
                    type=ActionType.UPDATE_TICKET,
                    payload={"ticket_id": ticket.id, "status": TicketStatus.ESCALATED.value},
                ),
                AgentAction(
                    type=ActionType.ESCALATE,
                    payload={"ticket_id": ticket.id, "reason": detail, "rounds": rounds},
                ),
            ],
        )
        return ClarityReview(
            score=0,
            clear=False,
            feedback=ROUND_LIMIT_FEEDBACK,
            escalated=True,
            response=response,
        )
