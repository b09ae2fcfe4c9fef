"""Guarded generative agents for Overseer."""

from overseer.agents.base import AgentContext, GuardedAgent
from overseer.agents.answer_agent import AnswerAgent
from overseer.agents.verification_agent import VerificationAgent
from overseer.agents.clarity_agent import ClarificationTracker, ClarityAgent, ClarityReview

__all__ = [
    "AgentContext",
    "GuardedAgent",
    "AnswerAgent",
    "VerificationAgent",
    "ClarificationTracker",
    "ClarityAgent",
    "ClarityReview",
]
