"""Evidence-backed question answering with a confidence gate.

The model must report a confidence score. Below the threshold the reply is
forced into escalation and a P1 follow-up ticket is requested, whatever
the model's own ESCALATE flag says.
"""

import logging
from typing import Optional

from overseer.adapters.llm import Purpose
from overseer.agents.base import AgentContext, GuardedAgent
from overseer.agents.fields import FieldSchema, FieldSpec, parse_bool, parse_int, parse_list, parse_text
from overseer.core.events import EventType
from overseer.core.models import ActionType, AgentAction, AgentResponse, TicketPriority, WorkItem

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You answer questions from coding agents and users with evidence-based responses. Every claim must have a source. If you cannot cite a source, you must escalate.

Respond in exactly this format, each field on its own line:

ANSWER: [Your answer in 500 words or fewer. Start with the answer, then explain.]
CONFIDENCE: [Integer 0-100. 90-100 = certain with evidence. 70-89 = likely correct. 50-69 = uncertain. 0-49 = guessing.]
SOURCES: [Comma-separated task IDs, file paths (e.g. "src/db.py:42"), plan names or ticket numbers (e.g. "TK-7"). Never "general knowledge".]
ESCALATE: [true or false. Must be true if CONFIDENCE is below 50.]

If you have no relevant sources at all, set CONFIDENCE to 0 and ESCALATE to true."""


class AnswerAgent(GuardedAgent):
    """Q&A agent whose low-confidence answers are always escalated."""

    name = "answer-agent"
    purpose = Purpose.ANSWER
    system_prompt = SYSTEM_PROMPT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.schema = FieldSchema([
            FieldSpec("ANSWER", parse_text, None),
            FieldSpec("CONFIDENCE", parse_int(0, 100), self.config.default_confidence),
            FieldSpec("SOURCES", parse_list, []),
            FieldSpec("ESCALATE", parse_bool, False),
        ])

    def _guard(self, content: str, context: AgentContext) -> AgentResponse:
        parsed = self.schema.parse(content)
        if not parsed.recovered:
            logger.warning(f"{self.name} reply had no recognizable fields, returning raw text")
            self.record(EventType.PARSE_FALLBACK, "no fields recovered")
            return AgentResponse(content=content, details={"missing": parsed.missing})

        answer = parsed.get("ANSWER") or content.strip()
        confidence = parsed.get("CONFIDENCE")
        sources = parsed.get("SOURCES") or []
        model_escalate = parsed.get("ESCALATE")

        low_confidence = confidence < self.config.confidence_threshold
        escalated = low_confidence or model_escalate
        task = context.task

        actions = []
        if escalated:
            if low_confidence:
                reason = (
                    f"Confidence {confidence}% below threshold "
                    f"{self.config.confidence_threshold}%"
                )
            else:
                reason = "Model requested escalation"
            actions.append(
                AgentAction(
                    type=ActionType.ESCALATE,
                    payload={
                        "reason": reason,
                        "answer": answer,
                        "confidence": confidence,
                        "task_id": task.id if task else None,
                    },
                )
            )
            logger.info(f"{self.name} escalated: {reason}")
            self.record(EventType.ESCALATED, reason)

        if low_confidence:
            actions.append(self._follow_up_ticket(answer, confidence, sources, task))
            self.record(
                EventType.LOW_CONFIDENCE,
                f"confidence {confidence} for task {task.id if task and task.id else '-'}",
            )

        return AgentResponse(
            content=answer,
            confidence=confidence,
            sources=sources,
            actions=actions,
            escalated=escalated,
            details={
                "model_escalate": model_escalate,
                "missing": parsed.missing,
                "defaulted": parsed.defaulted,
            },
        )

    def _follow_up_ticket(
        self,
        answer: str,
        confidence: int,
        sources: list[str],
        task: Optional[WorkItem],
    ) -> AgentAction:
        """Ticket asking a human to answer what the model could not."""
        if task is not None:
            title = f"Low confidence answer for task: {task.title}"
        else:
            title = "Low confidence answer needs human input"
        body = (
            "Question required human input.\n\n"
            f"Answer provided ({confidence}% confidence):\n{answer}\n\n"
            f"Sources: {', '.join(sources) if sources else 'none'}"
        )
        return AgentAction(
            type=ActionType.CREATE_TICKET,
            payload={
                "title": title,
                "body": body,
                "priority": TicketPriority.P1.value,
                "creator": self.name,
                "task_id": task.id if task else None,
            },
        )
