"""Deterministic system health monitoring.

Issues and corrective actions are computed from a state snapshot with fixed
thresholds, no model involved. A model is consulted only when issues exist,
and only to narrate them; any actions it proposes are appended after the
deterministic ones, never replacing them.

Usage:
    monitor = HealthMonitor(provider, config=settings.health)
    response = monitor.check(build_snapshot(work_items, tickets, events))
    # response.actions holds instructions for the stores
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from overseer.adapters.llm import LLMProvider, Message, Purpose
from overseer.agents.base import AgentContext, GuardedAgent
from overseer.agents.fields import FieldSchema, FieldSpec, parse_bool, parse_text
from overseer.core.config import GuardConfig, HealthConfig, OverseerSettings
from overseer.core.events import FAILURE_ACTIONS, EventType
from overseer.core.models import (
    ActionType,
    AgentAction,
    AgentResponse,
    AgentState,
    AgentStatus,
    AuditEntry,
    TaskPriority,
    TaskStatus,
    Ticket,
    TicketPriority,
    TicketStatus,
    WorkItem,
)
from overseer.core.stores import EventSink, TicketStore, WorkItemStore

logger = logging.getLogger(__name__)

ACTOR = "health-monitor"
CODE_GENERATION = "code_generation"
MAX_MODEL_ACTIONS = 5

_TICKET_REF = re.compile(r"\bTK-(\d+)\b", re.IGNORECASE)
_SELECTED = re.compile(r"SELECTED:\s*TK-(\d+)", re.IGNORECASE)
_PRIORITY_REF = re.compile(r"\bP([1-3])\b")
_ACTION_VERB = re.compile(
    r"\b(CREATE_VERIFICATION|CREATE_PLANNING|CREATE_CODING|ESCALATE_USER|"
    r"RECOVER_STUCK|REPRIORITIZE|PAUSE_INTAKE)\b[\s:\-]*(.*)",
    re.IGNORECASE,
)


def _utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class IssueSeverity(str, Enum):
    """Severity of a detected health issue."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class HealthStatus(str, Enum):
    """Overall system status."""

    HEALTHY = "HEALTHY"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass
class HealthIssue:
    """A problem found in a snapshot.

    Attributes:
        code: Stable identifier, e.g. "overload"
        severity: critical, warning or info
        description: Human-readable description
        actions: Actions generated for this issue without any model
    """

    code: str
    severity: IssueSeverity
    description: str
    actions: list[AgentAction] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.severity.value.upper()}: {self.description}"


@dataclass
class SystemSnapshot:
    """Point-in-time view of the system the monitor reasons over.

    Attributes:
        ready_count: Unblocked, not-yet-started work items
        agents: Agent runtime states
        tickets: Tickets of every status
        audit_entries: Recent audit entries
        plan_tasks: Work items of the active plan
        now: Reference time for age-based checks
    """

    ready_count: int = 0
    agents: list[AgentState] = field(default_factory=list)
    tickets: list[Ticket] = field(default_factory=list)
    audit_entries: list[AuditEntry] = field(default_factory=list)
    plan_tasks: list[WorkItem] = field(default_factory=list)
    now: datetime = field(default_factory=_utc_now)

    def tickets_with_status(self, status: TicketStatus) -> list[Ticket]:
        return [t for t in self.tickets if t.status == status]


def build_snapshot(
    work_items: WorkItemStore,
    tickets: TicketStore,
    events: EventSink,
    agents: Optional[list[AgentState]] = None,
    plan_tasks: Optional[list[WorkItem]] = None,
    now: Optional[datetime] = None,
    audit_limit: int = 200,
) -> SystemSnapshot:
    """Assemble a snapshot from the external stores.

    Args:
        work_items: Work-item store (for the ready count)
        tickets: Ticket store (every status is read)
        events: Audit sink (most recent entries)
        agents: Agent states, if known
        plan_tasks: Work items of the active plan, if any
        now: Reference time (current UTC time when None)
        audit_limit: How many recent audit entries to read

    Returns:
        SystemSnapshot
    """
    all_tickets: list[Ticket] = []
    for status in TicketStatus:
        all_tickets.extend(tickets.list_by_status(status))

    return SystemSnapshot(
        ready_count=len(work_items.list_ready()),
        agents=list(agents or []),
        tickets=all_tickets,
        audit_entries=events.query(limit=audit_limit),
        plan_tasks=list(plan_tasks or []),
        now=now or _utc_now(),
    )


def overall_status(issues: list[HealthIssue]) -> HealthStatus:
    """Worst severity among issues; info issues leave the system healthy."""
    if any(i.severity == IssueSeverity.CRITICAL for i in issues):
        return HealthStatus.CRITICAL
    if any(i.severity == IssueSeverity.WARNING for i in issues):
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


def parse_model_actions(text: str) -> list[AgentAction]:
    """Turn ACTIONS lines like ``1. PAUSE_INTAKE backlog too large`` into actions.

    Lines without a known verb are ignored. At most five actions are kept.
    """
    actions: list[AgentAction] = []
    for line in (text or "").splitlines():
        match = _ACTION_VERB.search(line)
        if not match:
            continue
        verb = match.group(1).upper()
        detail = match.group(2).strip() or verb.lower()
        ref = _TICKET_REF.search(detail)
        ticket_ref = f"TK-{ref.group(1)}" if ref else None

        if verb == "CREATE_VERIFICATION":
            action = AgentAction(
                type=ActionType.CREATE_TICKET,
                payload={
                    "title": f"verify: {detail}",
                    "operation_type": "verification",
                    "priority": TicketPriority.P2.value,
                    "source": "model",
                },
            )
        elif verb in ("CREATE_PLANNING", "CREATE_CODING"):
            action = AgentAction(
                type=ActionType.CREATE_TICKET,
                payload={
                    "title": detail,
                    "operation_type": "planning" if verb == "CREATE_PLANNING" else CODE_GENERATION,
                    "priority": TicketPriority.P2.value,
                    "source": "model",
                },
            )
        elif verb == "ESCALATE_USER":
            action = AgentAction(type=ActionType.ESCALATE, payload={"reason": detail, "source": "model"})
        elif verb == "RECOVER_STUCK":
            action = AgentAction(
                type=ActionType.UPDATE_TICKET,
                payload={
                    "ticket": ticket_ref,
                    "status": TicketStatus.OPEN.value,
                    "reason": detail,
                    "source": "model",
                },
            )
        elif verb == "REPRIORITIZE":
            priority = _PRIORITY_REF.search(detail)
            action = AgentAction(
                type=ActionType.UPDATE_TICKET,
                payload={
                    "ticket": ticket_ref,
                    "priority": f"P{priority.group(1)}" if priority else None,
                    "reason": detail,
                    "source": "model",
                },
            )
        else:  # PAUSE_INTAKE
            action = AgentAction(
                type=ActionType.LOG,
                payload={"action": "pause_intake", "reason": detail, "source": "model"},
            )

        actions.append(action)
        if len(actions) >= MAX_MODEL_ACTIONS:
            break
    return actions


NARRATIVE_PROMPT = """You supervise an engineering work pipeline. Issues have already been detected for you; explain them and recommend corrective steps.

Respond with exactly these fields, each starting on its own line:

ASSESSMENT: [One paragraph on system health. End with HEALTHY, WARNING or CRITICAL.]
ISSUES: [Numbered issues: what is wrong, severity, threshold.]
ACTIONS: [Numbered actions, at most 5, each "N. VERB what where". Verbs: CREATE_VERIFICATION, CREATE_PLANNING, CREATE_CODING, ESCALATE_USER, RECOVER_STUCK, REPRIORITIZE, PAUSE_INTAKE.]
ESCALATE: [true or false]

Never delete work. Cite ticket numbers (TK-N) where relevant."""


class HealthNarrator(GuardedAgent):
    """Narrates detected issues and extracts any proposed actions."""

    name = ACTOR
    purpose = Purpose.HEALTH
    system_prompt = NARRATIVE_PROMPT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.schema = FieldSchema([
            FieldSpec("ASSESSMENT", parse_text, None),
            FieldSpec("ISSUES", parse_text, None),
            FieldSpec("ACTIONS", parse_text, ""),
            FieldSpec("ESCALATE", parse_bool, False),
        ])

    def _guard(self, content: str, context: AgentContext) -> AgentResponse:
        parsed = self.schema.parse(content)
        if not parsed.recovered:
            logger.warning("Health narrative had no recognizable fields, using raw text")
            self.record(EventType.PARSE_FALLBACK, "no fields recovered")
            return AgentResponse(content=content)

        actions = parse_model_actions(parsed.get("ACTIONS") or "")
        escalate = bool(parsed.get("ESCALATE"))
        if escalate:
            actions.append(
                AgentAction(
                    type=ActionType.ESCALATE,
                    payload={"reason": "Health narrative recommended escalation", "source": "model"},
                )
            )
        return AgentResponse(
            content=content.strip(),
            actions=actions,
            escalated=escalate,
            details={"assessment": parsed.get("ASSESSMENT")},
        )


class HealthMonitor:
    """Computes health issues and corrective actions from snapshots.

    Usage:
        monitor = HealthMonitor(provider)
        issues, actions = monitor.detect_issues(snapshot)  # never calls a model
        response = monitor.check(snapshot)                 # at most one call
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        config: Optional[HealthConfig] = None,
        events: Optional[EventSink] = None,
        timeout: Optional[float] = None,
        guard_config: Optional[GuardConfig] = None,
    ):
        """Initialize the monitor.

        Args:
            provider: Optional model client used to narrate issues
            config: Thresholds (defaults when None)
            events: Optional audit sink
            timeout: Seconds before a model call is abandoned
            guard_config: Guard limits for the narrator (defaults when None)
        """
        self.provider = provider
        self.config = config or HealthConfig()
        self.events = events
        self.timeout = timeout
        self.narrator = (
            HealthNarrator(provider, guard_config, events, timeout) if provider else None
        )

    @classmethod
    def from_settings(
        cls,
        settings: OverseerSettings,
        provider: Optional[LLMProvider] = None,
        events: Optional[EventSink] = None,
    ) -> "HealthMonitor":
        """Build a monitor from loaded settings' health and guard sections."""
        return cls(
            provider,
            config=settings.health,
            events=events,
            timeout=settings.model_timeout,
            guard_config=settings.guard,
        )

    def detect_issues(self, snapshot: SystemSnapshot) -> tuple[list[HealthIssue], list[AgentAction]]:
        """Apply the fixed thresholds to a snapshot. Pure; no model call.

        Returns:
            (issues, deterministic actions in generation order). Proactive
            actions may exist without any issue.
        """
        cfg = self.config
        now = _aware(snapshot.now)
        issues: list[HealthIssue] = []
        actions: list[AgentAction] = []

        def add(issue: HealthIssue) -> None:
            issues.append(issue)
            actions.extend(issue.actions)

        # CRITICAL: overload
        if snapshot.ready_count > cfg.overload_threshold:
            reason = (
                f"{snapshot.ready_count} ready work items exceeds limit of "
                f"{cfg.overload_threshold}"
            )
            add(HealthIssue(
                code="overload",
                severity=IssueSeverity.CRITICAL,
                description=f"Task overload: {reason}",
                actions=[AgentAction(
                    type=ActionType.LOG,
                    payload={"action": "pause_intake", "reason": reason},
                )],
            ))

        # CRITICAL: agent failure
        failed_agents = [a.name for a in snapshot.agents if a.status == AgentStatus.ERROR]
        if failed_agents:
            names = ", ".join(failed_agents)
            add(HealthIssue(
                code="agent_failure",
                severity=IssueSeverity.CRITICAL,
                description=f"Agent failure: {names} in error state",
                actions=[AgentAction(
                    type=ActionType.ESCALATE,
                    payload={"reason": f"Agent(s) in error state: {names}", "agents": failed_agents},
                )],
            ))

        # CRITICAL: plan drift
        plan_tasks = snapshot.plan_tasks
        if plan_tasks:
            failing = [
                t for t in plan_tasks
                if t.status in (TaskStatus.FAILED, TaskStatus.NEEDS_RECHECK)
            ]
            ratio = len(failing) / len(plan_tasks)
            if ratio > cfg.drift_threshold:
                percent = round(ratio * 100)
                listing = "\n".join(f"- {t.title} ({t.status.value})" for t in failing)
                add(HealthIssue(
                    code="drift",
                    severity=IssueSeverity.CRITICAL,
                    description=(
                        f"Plan drift: {percent}% of tasks failed or need recheck "
                        f"({len(failing)}/{len(plan_tasks)})"
                    ),
                    actions=[AgentAction(
                        type=ActionType.CREATE_TICKET,
                        payload={
                            "title": (
                                f"Plan drift correction: {len(failing)} of "
                                f"{len(plan_tasks)} tasks need attention"
                            ),
                            "operation_type": "planning",
                            "priority": TicketPriority.P1.value,
                            "body": f"Plan drift at {percent}%. Failing tasks:\n{listing}",
                            "task_ids": [t.id for t in failing if t.id],
                        },
                    )],
                ))

        # WARNING: escalation backlog
        escalated = snapshot.tickets_with_status(TicketStatus.ESCALATED)
        if len(escalated) > cfg.escalation_backlog_threshold:
            add(HealthIssue(
                code="escalation_backlog",
                severity=IssueSeverity.WARNING,
                description=(
                    f"Escalation backlog: {len(escalated)} escalated tickets unresolved "
                    f"(limit: {cfg.escalation_backlog_threshold})"
                ),
                actions=[AgentAction(
                    type=ActionType.ESCALATE,
                    payload={"reason": f"{len(escalated)} escalated tickets need user attention"},
                )],
            ))

        # WARNING: repeated failures (issue only)
        failure_cutoff = now - timedelta(hours=cfg.failure_window_hours)
        failures = [
            e for e in snapshot.audit_entries
            if e.action in FAILURE_ACTIONS and _aware(e.created_at) >= failure_cutoff
        ]
        if len(failures) > cfg.failure_limit:
            add(HealthIssue(
                code="repeated_failures",
                severity=IssueSeverity.WARNING,
                description=(
                    f"Repeated failures: {len(failures)} task failures in the last "
                    f"{cfg.failure_window_hours} hours (limit: {cfg.failure_limit})"
                ),
            ))

        # WARNING: stale tickets
        open_tickets = snapshot.tickets_with_status(TicketStatus.OPEN)
        stale_cutoff = now - timedelta(hours=cfg.stale_ticket_hours)
        stale = [t for t in open_tickets if _aware(t.created_at) < stale_cutoff]
        if stale:
            add(HealthIssue(
                code="stale_tickets",
                severity=IssueSeverity.WARNING,
                description=(
                    f"Stale tickets: {len(stale)} ticket(s) open for more than "
                    f"{cfg.stale_ticket_hours} hours"
                ),
                actions=[
                    AgentAction(
                        type=ActionType.CREATE_TICKET,
                        payload={
                            "title": f'Recover stale ticket: {t.label} "{t.title}"',
                            "operation_type": "recovery",
                            "priority": TicketPriority.P2.value,
                            "body": (
                                f"Ticket {t.label} open more than {cfg.stale_ticket_hours} "
                                f"hours. Original: {t.title}"
                            ),
                            "blocking_ticket_id": t.id,
                        },
                    )
                    for t in stale[:cfg.stale_action_limit]
                ],
            ))

        # Proactive: verify recently finished coding work
        actions.extend(self._verification_actions(snapshot, open_tickets, now))

        # INFO: post-cycle review
        p1_tasks = [t for t in plan_tasks if t.priority == TaskPriority.P1]
        if p1_tasks and all(t.status == TaskStatus.VERIFIED for t in p1_tasks):
            remaining = sum(1 for t in plan_tasks if t.status != TaskStatus.VERIFIED)
            add(HealthIssue(
                code="post_cycle_review",
                severity=IssueSeverity.INFO,
                description=(
                    f"Post-cycle review: all {len(p1_tasks)} P1 tasks verified, "
                    f"{remaining} lower-priority tasks remaining. Consider a retrospective."
                ),
            ))

        return issues, actions

    def check(self, snapshot: SystemSnapshot) -> AgentResponse:
        """Run a health check.

        No issues means no model call. Otherwise exactly one model call
        (when a provider is configured) narrates the issues.

        Returns:
            AgentResponse whose details carry the issues and overall status

        Raises:
            Exception: Whatever the provider raised
        """
        issues, actions = self.detect_issues(snapshot)
        status = overall_status(issues)
        details = {"issues": issues, "status": status.value}

        for issue in issues:
            self._record(EventType.HEALTH_ISSUE, str(issue))

        if not issues:
            open_count = len(snapshot.tickets_with_status(TicketStatus.OPEN))
            proactive = f"{len(actions)} proactive actions generated." if actions else "None needed."
            content = (
                f"ASSESSMENT: System healthy. {snapshot.ready_count} tasks ready, "
                f"{open_count} tickets open. Status: HEALTHY.\n"
                "ISSUES: None detected.\n"
                f"ACTIONS: {proactive}\n"
                "ESCALATE: false"
            )
            self._record(EventType.HEALTH_CHECK, "HEALTHY")
            return AgentResponse(content=content, actions=actions, details=details)

        issue_list = "\n".join(str(i) for i in issues)
        self._record(EventType.HEALTH_CHECK, f"{status.value}: {len(issues)} issue(s)")

        if self.narrator is None:
            return AgentResponse(content=issue_list, actions=actions, details=details)

        narrative = self.narrator.respond(
            f"{self._state_summary(snapshot)}\n\nDetected issues:\n{issue_list}"
        )
        details["narrative_actions"] = len(narrative.actions)
        return AgentResponse(
            content=narrative.content,
            actions=actions + narrative.actions,
            tokens_used=narrative.tokens_used,
            escalated=narrative.escalated,
            details=details,
        )

    def select_next_ticket(self, candidates: list[Ticket]) -> Optional[Ticket]:
        """Pick the ticket to process next.

        Zero or one candidate needs no model call. Otherwise the model picks
        via ``SELECTED: TK-<n>``; an unusable reply or a failed call falls
        back to priority, then age.
        """
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]
        if self.provider is None:
            return self._deterministic_pick(candidates)

        listing = "\n".join(
            f"{i + 1}. {t.label} [{t.priority.value}] \"{t.title}\" "
            f"(type: {t.operation_type or '-'}, created {_aware(t.created_at).date()})"
            for i, t in enumerate(candidates)
        )
        prompt = (
            f"Select the NEXT ticket to process from these {len(candidates)} candidates:\n\n"
            f"{listing}\n\n"
            "Prefer tickets that unblock others, foundation work before UI, and pending "
            "verifications. Use priority, then age, as tie-breakers.\n\n"
            "Reply with exactly one line:\nSELECTED: TK-<number>"
        )

        try:
            response = self.provider.complete(
                messages=[Message(role="user", content=prompt).to_dict()],
                purpose=Purpose.HEALTH,
                max_tokens=64,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning(f"Ticket selection call failed, using deterministic order: {e}")
            return self._deterministic_pick(candidates)

        by_number = {t.ticket_number: t for t in candidates}
        for pattern in (_SELECTED, _TICKET_REF):
            match = pattern.search(response.content or "")
            if match and int(match.group(1)) in by_number:
                return by_number[int(match.group(1))]

        logger.info("Ticket selection reply named no candidate, using deterministic order")
        return self._deterministic_pick(candidates)

    def _verification_actions(
        self, snapshot: SystemSnapshot, open_tickets: list[Ticket], now: datetime
    ) -> list[AgentAction]:
        """Verification tickets for recently resolved, unverified coding work."""
        cutoff = now - timedelta(hours=self.config.proactive_window_hours)
        candidates = [
            t for t in snapshot.tickets_with_status(TicketStatus.RESOLVED)
            if _aware(t.updated_at) > cutoff
            and CODE_GENERATION in (t.operation_type, t.deliverable_type)
            and t.verification_result not in ("passed", "verified")
        ]

        actions = []
        for ticket in candidates[:self.config.proactive_action_limit]:
            ref = re.compile(rf"\b{re.escape(ticket.label)}\b")
            already = any(
                "verify:" in t.title.lower() and ref.search(t.title) for t in open_tickets
            )
            if already:
                continue
            actions.append(
                AgentAction(
                    type=ActionType.CREATE_TICKET,
                    payload={
                        "title": f'verify: {ticket.label} "{ticket.title}"',
                        "operation_type": "verification",
                        "deliverable_type": "verification",
                        "priority": TicketPriority.P2.value,
                        "body": (
                            f"Verify the output of completed coding ticket {ticket.label}.\n\n"
                            f"Original ticket: {ticket.title}\n"
                            f"Acceptance criteria: "
                            f"{ticket.acceptance_criteria or 'Match original requirements'}"
                        ),
                        "blocking_ticket_id": ticket.id,
                    },
                )
            )
        return actions

    def _state_summary(self, snapshot: SystemSnapshot) -> str:
        agents = ", ".join(f"{a.name}({a.status.value})" for a in snapshot.agents) or "none"
        return "\n".join([
            "System Health Check",
            f"Tasks: {len(snapshot.plan_tasks)} in active plan, {snapshot.ready_count} ready",
            (
                f"Tickets: {len(snapshot.tickets)} total, "
                f"{len(snapshot.tickets_with_status(TicketStatus.OPEN))} open, "
                f"{len(snapshot.tickets_with_status(TicketStatus.ESCALATED))} escalated"
            ),
            f"Agents: {agents}",
            f"Recent audit entries: {len(snapshot.audit_entries)}",
        ])

    @staticmethod
    def _deterministic_pick(candidates: list[Ticket]) -> Ticket:
        """Highest priority first, then oldest."""
        return min(candidates, key=lambda t: (t.priority.value, _aware(t.created_at)))

    def _record(self, action: str, detail: str) -> None:
        if self.events is not None:
            self.events.record(ACTOR, action, detail)
