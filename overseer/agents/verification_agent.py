"""Verification of completed work against acceptance criteria.

The model returns a JSON verdict with per-criterion results. The stated
overall status is advisory only: any criterion marked ``not_met`` forces
the verdict to ``failed``.
"""

import json
import logging
import math
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from overseer.adapters.llm import Purpose
from overseer.agents.base import AgentContext, GuardedAgent
from overseer.core.events import EventType
from overseer.core.models import (
    ActionType,
    AgentAction,
    AgentResponse,
    TaskPriority,
    TaskStatus,
)

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class VerificationStatus(str, Enum):
    """Overall verification verdict."""

    PASSED = "passed"
    FAILED = "failed"
    NEEDS_RECHECK = "needs_recheck"


class CriterionStatus(str, Enum):
    """Per-criterion verdict."""

    MET = "met"
    NOT_MET = "not_met"
    UNCLEAR = "unclear"


# Task status each verdict maps to
_TASK_STATUS = {
    VerificationStatus.PASSED: TaskStatus.VERIFIED,
    VerificationStatus.FAILED: TaskStatus.FAILED,
    VerificationStatus.NEEDS_RECHECK: TaskStatus.NEEDS_RECHECK,
}

_AUDIT_ACTION = {
    VerificationStatus.PASSED: EventType.VERIFICATION_PASSED,
    VerificationStatus.FAILED: EventType.VERIFICATION_FAILED,
    VerificationStatus.NEEDS_RECHECK: EventType.VERIFICATION_RECHECK,
}


_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _as_text(v) -> str:
    """Plain text for a loosely-typed field; None becomes empty."""
    if v is None:
        return ""
    if isinstance(v, (dict, list)):
        return json.dumps(v)
    return str(v)


def _as_number(v) -> Optional[float]:
    """First number in a value such as ``12``, ``"85%"`` or ``"3 tests"``."""
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v) if math.isfinite(v) else None
    match = _NUMBER.search(str(v or ""))
    if not match:
        return None
    number = float(match.group())
    return number if math.isfinite(number) else None


class CriterionResult(BaseModel):
    """Verdict on one acceptance criterion."""

    model_config = ConfigDict(extra="ignore")

    criterion_text: str = ""
    status: CriterionStatus = CriterionStatus.UNCLEAR
    evidence: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        """Map free-form status text onto met/not_met/unclear."""
        text = str(v or "").strip().lower().replace(" ", "_").replace("-", "_")
        if text in ("not_met", "notmet", "unmet", "failed"):
            return CriterionStatus.NOT_MET
        if text == "met":
            return CriterionStatus.MET
        return CriterionStatus.UNCLEAR

    @field_validator("criterion_text", "evidence", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)


class TestResults(BaseModel):
    """Real test-runner numbers, if the model was given any."""

    model_config = ConfigDict(extra="ignore")

    passed: int = 0
    failed: int = 0
    skipped: int = 0
    coverage: Optional[float] = None

    @field_validator("passed", "failed", "skipped", mode="before")
    @classmethod
    def coerce_count(cls, v):
        """Unreadable counts become 0."""
        number = _as_number(v)
        return max(0, int(number)) if number is not None else 0

    @field_validator("coverage", mode="before")
    @classmethod
    def coerce_coverage(cls, v):
        """Accepts ``85``, ``85.5`` or ``"85%"``; unreadable coverage is None."""
        return _as_number(v)


class FollowUpTask(BaseModel):
    """Work the verifier asks for to fix an unmet criterion."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    description: str = ""
    priority: TaskPriority = TaskPriority.P1

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, v):
        """Unknown priorities fall back to P1."""
        try:
            return TaskPriority(str(v).upper())
        except ValueError:
            return TaskPriority.P1

    @field_validator("title", "description", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)


class VerificationReport(BaseModel):
    """The model's verification reply.

    Side fields are tolerant: malformed criteria or follow-up entries are
    dropped and unreadable test results become None, so a single bad field
    never discards the verdict.
    """

    model_config = ConfigDict(extra="ignore")

    status: VerificationStatus = VerificationStatus.FAILED
    criteria_results: list[CriterionResult] = Field(default_factory=list)
    test_results: Optional[TestResults] = None
    follow_up_tasks: list[FollowUpTask] = Field(default_factory=list)
    summary: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        """Anything other than passed or needs_recheck counts as failed."""
        text = str(v or "").strip().lower().replace(" ", "_").replace("-", "_")
        if text == "passed":
            return VerificationStatus.PASSED
        if text in ("needs_recheck", "needs_re_check"):
            return VerificationStatus.NEEDS_RECHECK
        return VerificationStatus.FAILED

    @field_validator("criteria_results", "follow_up_tasks", mode="before")
    @classmethod
    def drop_malformed_entries(cls, v):
        """Keep only object entries; anything else in the list is skipped."""
        if not isinstance(v, list):
            return []
        return [entry for entry in v if isinstance(entry, dict)]

    @field_validator("test_results", mode="before")
    @classmethod
    def drop_malformed_test_results(cls, v):
        return v if isinstance(v, dict) else None

    @field_validator("summary", mode="before")
    @classmethod
    def coerce_summary(cls, v):
        return _as_text(v)

    @property
    def met_count(self) -> int:
        return sum(1 for c in self.criteria_results if c.status == CriterionStatus.MET)

    @property
    def has_unmet(self) -> bool:
        return any(c.status == CriterionStatus.NOT_MET for c in self.criteria_results)


def parse_report(content: str) -> Optional[VerificationReport]:
    """Parse the first JSON object in a reply into a VerificationReport.

    Returns:
        The report, or None when no valid JSON object is present
    """
    match = _JSON_OBJECT.search(content or "")
    if not match:
        return None
    try:
        data = json.loads(match.group())
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return VerificationReport.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Verification reply failed validation: {e}")
        return None


SYSTEM_PROMPT = """You compare completed work against its acceptance criteria and real test results, and produce a structured pass/fail verdict with evidence. Never invent test results; use only test output provided to you.

For each acceptance criterion decide: met, not_met or unclear.
- If ANY criterion is not_met, the overall status is "failed".
- If ALL criteria are met, the overall status is "passed".
- If any criterion is unclear and none are not_met, the overall status is "needs_recheck".

Follow-up task titles use the format "Fix: [task title] - [unmet criterion]".

Respond with ONLY valid JSON:
{
  "status": "passed|failed|needs_recheck",
  "criteria_results": [
    {"criterion_text": "...", "status": "met|not_met|unclear", "evidence": "file path, test name or observation"}
  ],
  "test_results": {"passed": 0, "failed": 0, "skipped": 0, "coverage": 0.0} or null,
  "follow_up_tasks": [{"title": "...", "description": "...", "priority": "P1"}],
  "summary": "One sentence: what passed, what failed, what to do next"
}"""


class VerificationAgent(GuardedAgent):
    """Verifies work and enforces the not_met override."""

    name = "verification-agent"
    purpose = Purpose.VERIFICATION
    system_prompt = SYSTEM_PROMPT
    max_tokens = 4096

    def _guard(self, content: str, context: AgentContext) -> AgentResponse:
        report = parse_report(content)
        if report is None:
            logger.warning(f"{self.name} reply had no valid verdict JSON, returning raw text")
            self.record(EventType.PARSE_FALLBACK, "no verdict JSON")
            return AgentResponse(content=content)

        stated = report.status
        final = stated
        overridden = False
        if report.has_unmet and stated != VerificationStatus.FAILED:
            final = VerificationStatus.FAILED
            overridden = True
            logger.warning(
                f"Verification override: model said {stated.value} but criteria "
                "include not_met items, forcing failed"
            )
            self.record(
                EventType.VERIFICATION_OVERRIDE,
                f"stated {stated.value}, forced failed",
            )

        task = context.task
        task_label = f'"{task.title}"' if task else "(no task)"
        actions: list[AgentAction] = []

        if task is not None and task.id:
            actions.append(
                AgentAction(
                    type=ActionType.UPDATE_TASK,
                    payload={"task_id": task.id, "status": _TASK_STATUS[final].value},
                )
            )

        for follow_up in report.follow_up_tasks:
            if not follow_up.title.strip():
                continue
            actions.append(
                AgentAction(
                    type=ActionType.CREATE_TASK,
                    payload={
                        "title": follow_up.title,
                        "description": follow_up.description,
                        "priority": follow_up.priority.value,
                        "plan_id": task.plan_id if task else None,
                        "dependencies": [task.id] if task and task.id else [],
                    },
                )
            )

        audit_action = _AUDIT_ACTION[final]
        audit_detail = f"Task {task_label} verification {final.value}"
        actions.append(
            AgentAction(
                type=ActionType.LOG,
                payload={"actor": self.name, "action": audit_action, "detail": audit_detail},
            )
        )
        self.record(audit_action, audit_detail)

        total = len(report.criteria_results)
        summary = report.summary or "See details"
        content_text = f"Verification {final.value}: {report.met_count}/{total} criteria met. {summary}"

        return AgentResponse(
            content=content_text,
            actions=actions,
            details={
                "stated_status": stated.value,
                "final_status": final.value,
                "overridden": overridden,
                "report": report.model_dump(mode="json"),
            },
        )
