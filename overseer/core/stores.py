"""External store interfaces.

The core never persists anything itself. Callers hand it snapshots and apply
the instructions it returns through implementations of these protocols.
"""

from datetime import datetime
from typing import Any, Optional, Protocol

from overseer.core.models import AuditEntry, Ticket, TicketReply, TicketStatus, WorkItem


class WorkItemStore(Protocol):
    """Durable store of work items."""

    def get(self, item_id: str) -> Optional[WorkItem]:
        ...

    def create(self, fields: dict[str, Any]) -> str:
        """Create a work item and return its id."""
        ...

    def update(self, item_id: str, fields: dict[str, Any]) -> None:
        ...

    def list_ready(self) -> list[WorkItem]:
        """Work items ready for execution."""
        ...

    def list_by_parent(self, parent_id: str) -> list[WorkItem]:
        ...


class TicketStore(Protocol):
    """Durable store of tickets and their replies."""

    def get(self, ticket_id: str) -> Optional[Ticket]:
        ...

    def create(self, fields: dict[str, Any]) -> str:
        ...

    def update(self, ticket_id: str, fields: dict[str, Any]) -> None:
        ...

    def list_by_status(self, status: TicketStatus) -> list[Ticket]:
        ...

    def add_reply(self, ticket_id: str, reply: TicketReply) -> str:
        ...


class EventSink(Protocol):
    """Append-only audit sink."""

    def record(self, actor: str, action: str, detail: str = "") -> AuditEntry:
        ...

    def query(
        self,
        limit: int = 100,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[AuditEntry]:
        ...
