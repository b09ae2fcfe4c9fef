"""Core components for Overseer."""

from overseer.core.config import OverseerSettings, load_settings
from overseer.core.events import EventLog, EventType
from overseer.core.models import AgentAction, AgentResponse, Ticket, WorkItem

__all__ = [
    "OverseerSettings",
    "load_settings",
    "EventLog",
    "EventType",
    "AgentAction",
    "AgentResponse",
    "Ticket",
    "WorkItem",
]
