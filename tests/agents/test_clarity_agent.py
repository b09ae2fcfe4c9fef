"""Tests for the ClarityAgent and the clarification round limit."""

import threading

import pytest

from conftest import make_ticket
from overseer.adapters.llm import Purpose
from overseer.agents import ClarificationTracker, ClarityAgent
from overseer.agents.clarity_agent import ROUND_LIMIT_FEEDBACK
from overseer.core.events import EventType
from overseer.core.models import ActionType, TicketReply


@pytest.fixture
def agent(mock_provider, event_log):
    return ClarityAgent(mock_provider, events=event_log)


@pytest.fixture
def ticket():
    return make_ticket(7, title="Which database?", body="Postgres or SQLite?")


class TestClarificationTracker:
    """Tests for the per-ticket round counter."""

    def test_record_increments(self):
        tracker = ClarificationTracker()
        assert tracker.record("t") == 1
        assert tracker.record("t") == 2
        assert tracker.rounds("t") == 2
        assert tracker.rounds("other") == 0

    def test_observe_never_lowers(self):
        tracker = ClarificationTracker()
        tracker.observe("t", 3)
        assert tracker.observe("t", 1) == 3
        assert tracker.rounds("t") == 3

    def test_concurrent_records(self):
        tracker = ClarificationTracker()
        threads = [threading.Thread(target=lambda: [tracker.record("t") for _ in range(100)]) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert tracker.rounds("t") == 400


class TestClarityAgent:
    """Tests for reply review."""

    def test_clear_reply_resolves(self, agent, mock_provider, ticket):
        mock_provider.add_text_response(
            "SCORE: 92\nASSESSMENT: clear\nFEEDBACK: No issues, reply is actionable."
        )

        review = agent.review_reply(ticket, "Postgres 16, schema in db/schema.sql")

        assert review.score == 92
        assert review.clear is True
        assert review.escalated is False
        update = review.response.actions_of(ActionType.UPDATE_TICKET)[0]
        assert update.payload == {"ticket_id": "ticket-7", "status": "resolved"}
        reply = review.response.actions_of(ActionType.ADD_REPLY)[0]
        assert reply.payload["clarity_score"] == 92
        assert reply.payload["author"] == "clarity-agent"
        assert mock_provider.last_call["purpose"] == Purpose.CLARITY

    def test_unclear_reply_stays_in_review(self, agent, mock_provider, ticket):
        mock_provider.add_text_response(
            "SCORE: 60\nASSESSMENT: needs_clarification\nFEEDBACK: 1. Which version?"
        )

        review = agent.review_reply(ticket, "Postgres probably")

        assert review.clear is False
        assert review.feedback == "1. Which version?"
        update = review.response.actions_of(ActionType.UPDATE_TICKET)[0]
        assert update.payload["status"] == "in_review"

    def test_pass_score_boundary(self, agent, mock_provider, ticket):
        mock_provider.add_text_response("SCORE: 85")
        assert agent.review_reply(ticket, "reply").clear is True

    def test_missing_score_defaults(self, agent, mock_provider, ticket):
        mock_provider.add_text_response("ASSESSMENT: unsure\nFEEDBACK: 1. Which one?")
        review = agent.review_reply(ticket, "reply")
        assert review.score == 50
        assert review.clear is False

    def test_rounds_are_recorded(self, agent, mock_provider, ticket, event_log):
        mock_provider.add_text_response("SCORE: 40")
        agent.review_reply(ticket, "reply")
        assert agent.tracker.rounds("ticket-7") == 1
        assert "TK-7 round 1" in event_log.query(action=EventType.CLARIFICATION_ROUND)[0].detail

    def test_sixth_round_escalates_without_model_call(self, agent, mock_provider, ticket, event_log):
        """After five rounds the ticket escalates and the model is not consulted."""
        for _ in range(5):
            mock_provider.add_text_response("SCORE: 40\nFEEDBACK: 1. Still unclear")
            agent.review_reply(ticket, "vague")
        assert mock_provider.call_count == 5

        review = agent.review_reply(ticket, "still vague")

        assert mock_provider.call_count == 5
        assert review.escalated is True
        assert review.feedback == ROUND_LIMIT_FEEDBACK
        assert review.response.escalated is True
        update = review.response.actions_of(ActionType.UPDATE_TICKET)[0]
        assert update.payload["status"] == "escalated"
        assert len(review.response.actions_of(ActionType.ESCALATE)) == 1
        assert event_log.query(action=EventType.CLARIFICATION_LIMIT)

    def test_prior_replies_count_as_rounds(self, agent, mock_provider, ticket):
        """Rounds already on the ticket count even with a fresh tracker."""
        replies = [
            TicketReply(ticket_id="ticket-7", author="clarity-agent", body=f"round {i}")
            for i in range(5)
        ] + [TicketReply(ticket_id="ticket-7", author="human", body="answer")]

        review = agent.review_reply(ticket, "reply", replies=replies)

        assert review.escalated is True
        assert mock_provider.call_count == 0

    def test_unparsable_reply(self, agent, mock_provider, ticket):
        mock_provider.add_text_response("It seems fine to me.")
        review = agent.review_reply(ticket, "reply")
        assert review.response.content == "It seems fine to me."
        assert review.response.actions == []
        assert review.clear is False
