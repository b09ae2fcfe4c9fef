"""Core data models for Overseer."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


def _utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Work item status.

    Uses str mixin for easy JSON serialization.
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    NEEDS_RECHECK = "needs_recheck"
    FAILED = "failed"
    DECOMPOSED = "decomposed"  # Terminal for direct execution; run the subtasks


class TaskPriority(str, Enum):
    """Work item priority tier."""

    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""

    OPEN = "open"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    ESCALATED = "escalated"  # Needs human attention, automation stops
    BLOCKED = "blocked"


class TicketPriority(str, Enum):
    """Ticket priority tier."""

    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


class AgentStatus(str, Enum):
    """Runtime status of an agent."""

    IDLE = "idle"
    WORKING = "working"
    ERROR = "error"


class ComplexityTier(str, Enum):
    """Four-level complexity estimate derived from a work item."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class SubtaskCategory(str, Enum):
    """Role of a subtask within a decomposition."""

    SETUP = "setup"
    IMPLEMENTATION = "implementation"
    TESTING = "testing"
    INTEGRATION = "integration"


class DecompositionStrategy(str, Enum):
    """Strategy tag carried by a decomposition rule."""

    BY_FILE = "by_file"
    BY_COMPONENT = "by_component"
    BY_PROPERTY_GROUP = "by_property_group"
    BY_PHASE = "by_phase"
    BY_DEPENDENCY = "by_dependency"
    BY_COMPLEXITY = "by_complexity"
    CUSTOM = "custom"


class ActionType(str, Enum):
    """Instruction kinds emitted by agents and the health monitor."""

    CREATE_TASK = "create_task"
    CREATE_TICKET = "create_ticket"
    UPDATE_TASK = "update_task"
    UPDATE_TICKET = "update_ticket"
    ADD_REPLY = "add_reply"
    ESCALATE = "escalate"
    LOG = "log"


def _enum_or_default(enum_cls, value, default):
    """Coerce ``value`` into ``enum_cls``, falling back to ``default``."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _str_list(value: Any) -> List[str]:
    """Keep only string entries of a list-like value."""
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value if isinstance(v, str) and v]


@dataclass
class WorkItem:
    """A unit of planned engineering work.

    A work item may be atomic or need splitting. Once decomposed, only its
    subtasks are executable.
    """

    id: Optional[str] = None
    title: str = ""
    description: str = ""
    acceptance_criteria: str = ""
    priority: TaskPriority = TaskPriority.P2
    estimated_minutes: Optional[int] = None
    files: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    context: Union[str, Dict[str, Any], None] = None
    parent_id: Optional[str] = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    plan_id: Optional[str] = None

    @property
    def is_executable(self) -> bool:
        """Whether the item itself may be picked up for execution."""
        return self.status != TaskStatus.DECOMPOSED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkItem":
        """Build a WorkItem from loosely-typed store data.

        Unknown keys are ignored; invalid values degrade to defaults.
        """
        minutes = data.get("estimated_minutes")
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
            minutes = None
        elif not math.isfinite(minutes):
            minutes = None
        context = data.get("context", data.get("context_bundle"))
        if not isinstance(context, (str, dict)):
            context = None
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            acceptance_criteria=str(data.get("acceptance_criteria") or ""),
            priority=_enum_or_default(TaskPriority, data.get("priority"), TaskPriority.P2),
            estimated_minutes=int(minutes) if minutes is not None else None,
            files=_str_list(data.get("files", data.get("files_modified"))),
            dependencies=_str_list(data.get("dependencies")),
            context=context,
            parent_id=data.get("parent_id") or data.get("parent_task_id"),
            status=_enum_or_default(TaskStatus, data.get("status"), TaskStatus.NOT_STARTED),
            plan_id=data.get("plan_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert WorkItem to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "acceptance_criteria": self.acceptance_criteria,
            "priority": self.priority.value,
            "estimated_minutes": self.estimated_minutes,
            "files": list(self.files),
            "dependencies": list(self.dependencies),
            "context": self.context,
            "parent_id": self.parent_id,
            "status": self.status.value,
            "plan_id": self.plan_id,
        }


@dataclass
class TaskMetadata:
    """Signals derived from a work item's text and fields.

    Pure function of a WorkItem; recomputed on every decomposition attempt.
    """

    file_count: int = 0
    files: List[str] = field(default_factory=list)
    files_to_create: List[str] = field(default_factory=list)
    component_count: int = 0
    property_count: int = 0
    dependency_count: int = 0
    is_design_task: bool = False
    is_sync_task: bool = False
    is_ethics_task: bool = False
    has_tests: bool = False
    has_docs: bool = False
    has_ui: bool = False
    complexity: ComplexityTier = ComplexityTier.LOW
    keyword_signals: List[str] = field(default_factory=list)


@dataclass
class SubtaskDefinition:
    """One atomic subtask produced by a decomposition strategy.

    ``dependencies`` holds sibling subtask titles, not store ids.
    """

    title: str
    description: str
    priority: TaskPriority
    estimated_minutes: int
    acceptance_criteria: str
    dependencies: List[str] = field(default_factory=list)
    files_to_modify: List[str] = field(default_factory=list)
    files_to_create: List[str] = field(default_factory=list)
    context: str = ""
    category: SubtaskCategory = SubtaskCategory.IMPLEMENTATION

    def to_work_item(self, parent: Optional[WorkItem] = None) -> WorkItem:
        """Turn this definition into a child WorkItem of ``parent``."""
        return WorkItem(
            title=self.title,
            description=self.description,
            acceptance_criteria=self.acceptance_criteria,
            priority=self.priority,
            estimated_minutes=self.estimated_minutes,
            files=list(self.files_to_modify),
            context=self.context or None,
            parent_id=parent.id if parent else None,
            plan_id=parent.plan_id if parent else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "estimated_minutes": self.estimated_minutes,
            "acceptance_criteria": self.acceptance_criteria,
            "dependencies": list(self.dependencies),
            "files_to_modify": list(self.files_to_modify),
            "files_to_create": list(self.files_to_create),
            "context": self.context,
            "category": self.category.value,
        }


@dataclass
class DecompositionResult:
    """Outcome of splitting one work item."""

    original_id: str
    subtasks: List[SubtaskDefinition]
    strategy: str
    reason: str
    estimated_total_minutes: int
    is_fully_covered: bool

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "original_id": self.original_id,
            "subtasks": [st.to_dict() for st in self.subtasks],
            "strategy": self.strategy,
            "reason": self.reason,
            "estimated_total_minutes": self.estimated_total_minutes,
            "is_fully_covered": self.is_fully_covered,
        }


@dataclass
class AgentAction:
    """An instruction for the store or a human, never applied by the core."""

    type: ActionType
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "payload": dict(self.payload)}


@dataclass
class AgentResponse:
    """A generative agent's output after guarding.

    Attributes:
        content: Human-readable content (raw model text on parse failure)
        confidence: Confidence score 0-100, if the role reports one
        sources: Source citations
        actions: Instructions emitted by the guard
        tokens_used: Token usage of the model call, if one was made
        escalated: Whether the response was forced into a human-attention state
        details: Role-specific parsed fields and parse diagnostics
    """

    content: str
    confidence: Optional[int] = None
    sources: List[str] = field(default_factory=list)
    actions: List[AgentAction] = field(default_factory=list)
    tokens_used: Optional[int] = None
    escalated: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def actions_of(self, action_type: ActionType) -> List[AgentAction]:
        """Actions of one type, in emission order."""
        return [a for a in self.actions if a.type == action_type]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "content": self.content,
            "confidence": self.confidence,
            "sources": list(self.sources),
            "actions": [a.to_dict() for a in self.actions],
            "tokens_used": self.tokens_used,
            "escalated": self.escalated,
        }


@dataclass
class Ticket:
    """A ticket in the external ticket store."""

    id: str
    title: str
    body: str = ""
    ticket_number: int = 0
    status: TicketStatus = TicketStatus.OPEN
    priority: TicketPriority = TicketPriority.P2
    creator: str = ""
    assignee: Optional[str] = None
    task_id: Optional[str] = None
    operation_type: Optional[str] = None
    deliverable_type: Optional[str] = None
    verification_result: Optional[str] = None
    acceptance_criteria: Optional[str] = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def label(self) -> str:
        """Short human label, e.g. ``TK-7``."""
        return f"TK-{self.ticket_number}"


@dataclass
class TicketReply:
    """A reply on a ticket."""

    ticket_id: str
    author: str
    body: str
    clarity_score: Optional[int] = None
    id: Optional[str] = None
    created_at: datetime = field(default_factory=_utc_now)


@dataclass
class AgentState:
    """Snapshot of one agent's runtime status."""

    name: str
    agent_type: str = ""
    status: AgentStatus = AgentStatus.IDLE


@dataclass
class AuditEntry:
    """A single append-only audit record."""

    actor: str
    action: str
    detail: str = ""
    created_at: datetime = field(default_factory=_utc_now)
    id: Optional[int] = None
