"""Decomposition rules and the rule set that orders them.

A rule pairs a condition over (WorkItem, TaskMetadata) with a generator of
subtask definitions. Rules are evaluated in ascending priority; callers may
register custom rules at any priority, including ahead of the built-ins.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from overseer.core.models import (
    ComplexityTier,
    DecompositionStrategy,
    SubtaskDefinition,
    TaskMetadata,
    WorkItem,
)
from overseer.planning import strategies

logger = logging.getLogger(__name__)

Condition = Callable[[WorkItem, TaskMetadata], bool]
Generator = Callable[[WorkItem, TaskMetadata], Optional[list[SubtaskDefinition]]]
Describer = Callable[[TaskMetadata], str]


@dataclass(frozen=True)
class DecompositionRule:
    """A (condition, strategy) pair.

    Attributes:
        name: Unique, human-readable rule name
        priority: Evaluation order, lower first
        strategy: Strategy tag reported on the result
        condition: Predicate deciding whether the rule applies
        decompose: Generator producing candidate subtasks
        describe: Optional justification text for a match
    """

    name: str
    priority: int
    strategy: DecompositionStrategy
    condition: Condition
    decompose: Generator
    describe: Optional[Describer] = None

    def justification(self, metadata: TaskMetadata) -> str:
        """Human-readable reason this rule matched."""
        if self.describe is not None:
            return self.describe(metadata)
        return f'custom rule "{self.name}" matched'


def is_valid_rule(rule) -> bool:
    """Structural check: non-empty name, numeric priority, callables."""
    name = getattr(rule, "name", None)
    priority = getattr(rule, "priority", None)
    return (
        isinstance(name, str)
        and bool(name.strip())
        and isinstance(priority, (int, float))
        and not isinstance(priority, bool)
        and callable(getattr(rule, "condition", None))
        and callable(getattr(rule, "decompose", None))
    )


class RuleSet:
    """Append-only, priority-ordered collection of decomposition rules.

    Owned by one engine. Reads return snapshots, so evaluation never holds
    the lock.
    """

    def __init__(self, rules: Optional[list[DecompositionRule]] = None):
        self._rules: list[DecompositionRule] = []
        self._lock = threading.Lock()
        for rule in rules or []:
            self.register(rule)

    @classmethod
    def with_builtins(cls) -> "RuleSet":
        """Create a rule set pre-loaded with the six built-in rules."""
        return cls(builtin_rules())

    def register(self, rule: DecompositionRule) -> bool:
        """Register a rule.

        Invalid rules are rejected silently and leave the set unchanged.

        Args:
            rule: Rule to add

        Returns:
            True if the rule was added
        """
        if not is_valid_rule(rule):
            logger.debug(f"Rejected invalid decomposition rule: {rule!r}")
            return False

        with self._lock:
            self._rules.append(rule)
        logger.debug(f"Registered rule '{rule.name}' (priority {rule.priority})")
        return True

    @property
    def rules(self) -> list[DecompositionRule]:
        """Rules sorted by priority; ties keep registration order."""
        with self._lock:
            snapshot = list(self._rules)
        return sorted(snapshot, key=lambda r: r.priority)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def __contains__(self, name: str) -> bool:
        return any(rule.name == name for rule in self.rules)


def builtin_rules() -> list[DecompositionRule]:
    """The six built-in rules at priorities 1-6."""
    return [
        DecompositionRule(
            name="file-count-split",
            priority=1,
            strategy=DecompositionStrategy.BY_FILE,
            condition=lambda item, md: md.file_count > 3,
            decompose=strategies.decompose_by_file,
            describe=lambda md: f"{md.file_count} files detected (threshold: >3)",
        ),
        DecompositionRule(
            name="component-count-split",
            priority=2,
            strategy=DecompositionStrategy.BY_COMPONENT,
            condition=lambda item, md: md.component_count > 10 and md.is_design_task,
            decompose=strategies.decompose_by_component,
            describe=lambda md: f"{md.component_count} components in a design task (threshold: >10)",
        ),
        DecompositionRule(
            name="property-group-split",
            priority=3,
            strategy=DecompositionStrategy.BY_PROPERTY_GROUP,
            condition=lambda item, md: md.property_count > 8,
            decompose=strategies.decompose_by_property_group,
            describe=lambda md: f"{md.property_count} properties detected (threshold: >8)",
        ),
        DecompositionRule(
            name="time-based-split",
            priority=4,
            strategy=DecompositionStrategy.BY_PHASE,
            condition=lambda item, md: strategies.total_minutes(item, 0) > 45,
            decompose=strategies.decompose_by_phase,
            describe=lambda md: "estimated time exceeds 45 minutes",
        ),
        DecompositionRule(
            name="dependency-split",
            priority=5,
            strategy=DecompositionStrategy.BY_DEPENDENCY,
            condition=lambda item, md: md.dependency_count > 5,
            decompose=strategies.decompose_by_dependency,
            describe=lambda md: f"{md.dependency_count} dependencies detected (threshold: >5)",
        ),
        DecompositionRule(
            name="complexity-split",
            priority=6,
            strategy=DecompositionStrategy.BY_COMPLEXITY,
            condition=lambda item, md: md.complexity == ComplexityTier.VERY_HIGH,
            decompose=strategies.decompose_by_complexity,
            describe=lambda md: "estimated complexity is very_high",
        ),
    ]
