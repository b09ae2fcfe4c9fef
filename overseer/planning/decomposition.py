"""Rule-based decomposition of oversized work items.

The engine makes no model calls. It scans its rule set in priority order,
applies the first rule that yields subtasks, and enforces the global bounds:
every subtask lands in the configured minute range and recursion stops at
the configured depth.

Key Rules:
- A rule that raises is logged and skipped
- A rule that yields no subtasks counts as a non-match
- No match, or depth exhausted, returns None (the item is atomic)
"""

import logging
from dataclasses import replace
from typing import Optional

from overseer.core.config import DecompositionConfig
from overseer.core.events import EventType
from overseer.core.models import (
    DecompositionResult,
    SubtaskDefinition,
    TaskMetadata,
    WorkItem,
)
from overseer.core.stores import EventSink
from overseer.planning.metadata import MetadataExtractor
from overseer.planning.rules import DecompositionRule, RuleSet
from overseer.planning.strategies import total_minutes

logger = logging.getLogger(__name__)

ACTOR = "decomposition-engine"


class DecompositionEngine:
    """Splits work items into atomic, time-boxed subtasks."""

    def __init__(
        self,
        rule_set: Optional[RuleSet] = None,
        config: Optional[DecompositionConfig] = None,
        events: Optional[EventSink] = None,
        extractor: Optional[MetadataExtractor] = None,
    ):
        """Initialize the engine.

        Args:
            rule_set: Rules to evaluate (built-ins when None)
            config: Bounds and thresholds (defaults when None)
            events: Optional audit sink for decompositions and rule errors
            extractor: Metadata extractor (a fresh one when None)
        """
        self.rule_set = rule_set if rule_set is not None else RuleSet.with_builtins()
        self.config = config or DecompositionConfig()
        self.events = events
        self.extractor = extractor or MetadataExtractor()

    def extract_metadata(self, item: Optional[WorkItem]) -> TaskMetadata:
        """Derive metadata for a work item."""
        return self.extractor.extract(item)

    def register_rule(self, rule: DecompositionRule) -> bool:
        """Register a custom rule; invalid rules are rejected silently."""
        return self.rule_set.register(rule)

    def needs_decomposition(self, item: Optional[WorkItem]) -> bool:
        """Fast check whether an item is oversized.

        Does not decompose. True when the estimate, the file count or the
        component count exceeds its threshold.
        """
        if item is None:
            return False
        metadata = self.extract_metadata(item)
        return (
            total_minutes(item, 0) > self.config.minutes_threshold
            or metadata.file_count > self.config.file_threshold
            or metadata.component_count > self.config.component_threshold
        )

    def decompose(self, item: Optional[WorkItem], depth: int = 0) -> Optional[DecompositionResult]:
        """Decompose a work item with the first matching rule.

        Args:
            item: Work item to split
            depth: Current recursion depth

        Returns:
            DecompositionResult, or None when the item is atomic, missing,
            or the depth ceiling is reached
        """
        if item is None:
            logger.debug("decompose called without a work item")
            return None

        if depth >= self.config.max_depth:
            logger.info(
                f"Max decomposition depth ({self.config.max_depth}) reached "
                f"for '{item.title}', stopping"
            )
            return None

        metadata = self.extract_metadata(item)

        for rule in self.rule_set.rules:
            try:
                if not rule.condition(item, metadata):
                    continue
                logger.debug(f"Rule '{rule.name}' matched '{item.title}' ({rule.strategy})")
                subtasks = rule.decompose(item, metadata)
                if not subtasks:
                    logger.debug(f"Rule '{rule.name}' produced no subtasks, trying next rule")
                    continue
                clamped = [self._clamp(st) for st in subtasks]
                reason = f'Matched rule "{rule.name}": {rule.justification(metadata)}'
            except Exception as e:
                logger.warning(f"Error evaluating rule '{rule.name}': {e}")
                self._record(EventType.RULE_ERROR, f"{rule.name}: {e}")
                continue

            estimated_total = sum(st.estimated_minutes for st in clamped)
            strategy = getattr(rule.strategy, "value", rule.strategy)

            result = DecompositionResult(
                original_id=item.id or "",
                subtasks=clamped,
                strategy=str(strategy),
                reason=reason,
                estimated_total_minutes=estimated_total,
                is_fully_covered=self._is_covered(item, estimated_total),
            )

            logger.info(
                f"Decomposed '{item.title}' into {len(clamped)} subtasks "
                f"({estimated_total} min total, strategy {result.strategy})"
            )
            self._record(
                EventType.TASK_DECOMPOSED,
                f"{item.id or item.title}: {len(clamped)} subtasks via {rule.name}",
            )
            return result

        logger.debug(f"No rules matched '{item.title}', task is atomic")
        return None

    def decompose_recursive(
        self, item: Optional[WorkItem], depth: int = 0
    ) -> list[DecompositionResult]:
        """Decompose an item, then keep splitting any oversized subtasks.

        Bounded by the same depth ceiling as decompose().

        Returns:
            Results in depth-first order, parent before children
        """
        result = self.decompose(item, depth)
        if result is None:
            return []

        results = [result]
        for subtask in result.subtasks:
            child = subtask.to_work_item(item)
            if self.needs_decomposition(child):
                results.extend(self.decompose_recursive(child, depth + 1))
        return results

    def _clamp(self, subtask: SubtaskDefinition) -> SubtaskDefinition:
        """Clamp a subtask's minutes into the configured bounds."""
        minutes = subtask.estimated_minutes
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or minutes != minutes:
            minutes = self.config.min_subtask_minutes
        bounded = int(max(
            self.config.min_subtask_minutes,
            min(self.config.max_subtask_minutes, minutes),
        ))
        if bounded == subtask.estimated_minutes:
            return subtask
        return replace(subtask, estimated_minutes=bounded)

    def _is_covered(self, item: WorkItem, estimated_total: int) -> bool:
        """Whether subtasks cover enough of the original estimate."""
        original = total_minutes(item, 0)
        if original <= 0:
            return True
        return estimated_total >= original * self.config.coverage_ratio

    def _record(self, action: str, detail: str) -> None:
        if self.events is not None:
            self.events.record(ACTOR, action, detail)
