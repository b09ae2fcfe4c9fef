"""Shared pytest fixtures for Overseer tests."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from overseer.adapters.llm import MockProvider
from overseer.core.events import EventLog
from overseer.core.models import Ticket, TicketReply, TicketStatus, WorkItem


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def hours_ago(hours: float) -> datetime:
    """A timestamp ``hours`` before the fixed test clock."""
    return NOW - timedelta(hours=hours)


def make_work_item(**overrides) -> WorkItem:
    """Create a WorkItem with neutral defaults.

    The default title and description carry no file, component, property or
    keyword signals, so only the overridden fields drive decomposition.
    """
    fields = {
        "id": "task-1",
        "title": "Refactor billing",
        "description": "Rework how invoices get totalled.",
        "acceptance_criteria": "Totals match the ledger.",
    }
    fields.update(overrides)
    return WorkItem(**fields)


def make_ticket(number: int = 1, **overrides) -> Ticket:
    """Create a Ticket numbered ``number`` created at the test clock."""
    fields = {
        "id": f"ticket-{number}",
        "ticket_number": number,
        "title": f"Ticket {number}",
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return Ticket(**fields)


class InMemoryWorkItemStore:
    """Dict-backed WorkItemStore for tests."""

    def __init__(self, items: Optional[list[WorkItem]] = None):
        self.items: dict[str, dict[str, Any]] = {}
        self._ids = itertools.count(1)
        for item in items or []:
            self.items[item.id] = item.to_dict()

    def get(self, item_id: str) -> Optional[WorkItem]:
        data = self.items.get(item_id)
        return WorkItem.from_dict(data) if data else None

    def create(self, fields: dict[str, Any]) -> str:
        new_id = f"sub-{next(self._ids)}"
        self.items[new_id] = {**fields, "id": new_id}
        return new_id

    def update(self, item_id: str, fields: dict[str, Any]) -> None:
        self.items[item_id].update(fields)

    def list_ready(self) -> list[WorkItem]:
        return [
            WorkItem.from_dict(data)
            for data in self.items.values()
            if data.get("status") == "not_started"
        ]

    def list_by_parent(self, parent_id: str) -> list[WorkItem]:
        return [
            WorkItem.from_dict(data)
            for data in self.items.values()
            if data.get("parent_id") == parent_id
        ]


class InMemoryTicketStore:
    """List-backed TicketStore for tests."""

    def __init__(self, tickets: Optional[list[Ticket]] = None):
        self.tickets: list[Ticket] = list(tickets or [])
        self.replies: list[TicketReply] = []

    def get(self, ticket_id: str) -> Optional[Ticket]:
        return next((t for t in self.tickets if t.id == ticket_id), None)

    def create(self, fields: dict[str, Any]) -> str:
        number = len(self.tickets) + 1
        ticket = make_ticket(number, **fields)
        self.tickets.append(ticket)
        return ticket.id

    def update(self, ticket_id: str, fields: dict[str, Any]) -> None:
        ticket = self.get(ticket_id)
        for key, value in fields.items():
            setattr(ticket, key, value)

    def list_by_status(self, status: TicketStatus) -> list[Ticket]:
        return [t for t in self.tickets if t.status == status]

    def add_reply(self, ticket_id: str, reply: TicketReply) -> str:
        reply.id = f"reply-{len(self.replies) + 1}"
        self.replies.append(reply)
        return reply.id


@pytest.fixture
def mock_provider() -> MockProvider:
    """Provide a fresh MockProvider."""
    return MockProvider()


@pytest.fixture
def event_log() -> EventLog:
    """Provide an empty in-memory audit log."""
    return EventLog()


@pytest.fixture
def work_store() -> InMemoryWorkItemStore:
    """Provide an empty in-memory work-item store."""
    return InMemoryWorkItemStore()


@pytest.fixture
def ticket_store() -> InMemoryTicketStore:
    """Provide an empty in-memory ticket store."""
    return InMemoryTicketStore()
