"""Audit event log for Overseer.

Provides an in-memory, append-only implementation of the EventSink
protocol. Entries can be echoed to the console for visibility.

Durable storage is the caller's concern; wrap or replace EventLog with a
store-backed sink to persist entries.
"""

import threading
from datetime import datetime, timezone
from typing import Optional

from rich.console import Console

from overseer.core.models import AuditEntry

console = Console()


# Event type constants (for consistency)
class EventType:
    """Standard audit actions recorded by core modules."""

    # Decomposition events
    TASK_DECOMPOSED = "task_decomposed"
    RULE_ERROR = "rule_error"

    # Guard events
    LOW_CONFIDENCE = "low_confidence"
    ESCALATED = "escalated"
    VERIFICATION_OVERRIDE = "verification_override"
    VERIFICATION_PASSED = "verification_passed"
    VERIFICATION_FAILED = "verification_failed"
    VERIFICATION_RECHECK = "verification_recheck"
    CLARIFICATION_ROUND = "clarification_round"
    CLARIFICATION_LIMIT = "clarification_limit"
    PARSE_FALLBACK = "parse_fallback"

    # Health events
    HEALTH_CHECK = "health_check"
    HEALTH_ISSUE = "health_issue"

    # Execution events
    TASK_FAILED = "task_failed"
    AGENT_ERROR = "agent_error"


# Audit actions counted as failures by the health monitor
FAILURE_ACTIONS = frozenset({EventType.VERIFICATION_FAILED, EventType.TASK_FAILED})


class EventLog:
    """In-memory append-only audit log.

    Thread-safe. Entries receive increasing ids in record order.
    """

    def __init__(self, echo: bool = False):
        """Initialize the log.

        Args:
            echo: Whether to print each entry to the console
        """
        self.echo = echo
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def record(self, actor: str, action: str, detail: str = "") -> AuditEntry:
        """Append an audit entry.

        Args:
            actor: Who acted (agent name or "system")
            action: What happened (use EventType constants)
            detail: Free-form detail text

        Returns:
            The created AuditEntry
        """
        with self._lock:
            entry = AuditEntry(
                id=len(self._entries) + 1,
                actor=actor,
                action=action,
                detail=detail,
                created_at=datetime.now(timezone.utc),
            )
            self._entries.append(entry)

        if self.echo:
            _print_entry(entry)

        return entry

    def query(
        self,
        limit: int = 100,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[AuditEntry]:
        """List recent entries, newest first.

        Args:
            limit: Maximum number of entries to return
            actor: Only entries by this actor
            action: Only entries with this action
            since: Only entries created at or after this time

        Returns:
            Matching AuditEntry objects, newest first
        """
        with self._lock:
            entries = list(self._entries)

        result = []
        for entry in reversed(entries):
            if actor is not None and entry.actor != actor:
                continue
            if action is not None and entry.action != action:
                continue
            if since is not None and entry.created_at < since:
                continue
            result.append(entry)
            if len(result) >= limit:
                break
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _print_entry(entry: AuditEntry) -> None:
    """Print an entry to the console in a readable format."""
    timestamp = entry.created_at.strftime("%H:%M:%S")
    color = _get_action_color(entry.action)

    console.print(
        f"[dim]{timestamp}[/dim] [{color}]{entry.action}[/{color}] "
        f"[bold]{entry.actor}[/bold]",
        end="",
    )
    if entry.detail:
        console.print(f" [dim]{entry.detail}[/dim]")
    else:
        console.print()


def _get_action_color(action: str) -> str:
    """Get the Rich color for an audit action."""
    if "error" in action or "failed" in action:
        return "red"
    if "override" in action or "escalat" in action or "limit" in action:
        return "yellow"
    if "passed" in action or "decomposed" in action:
        return "green"
    return "cyan"
