"""Tests for the DecompositionEngine."""

import pytest

from conftest import make_work_item
from overseer.core.config import DecompositionConfig
from overseer.core.events import EventType
from overseer.core.models import (
    DecompositionStrategy,
    SubtaskDefinition,
    TaskPriority,
)
from overseer.planning.decomposition import DecompositionEngine
from overseer.planning.rules import DecompositionRule


def _subtask(title, minutes=20, files=None):
    return SubtaskDefinition(
        title=title,
        description="",
        priority=TaskPriority.P2,
        estimated_minutes=minutes,
        acceptance_criteria="",
        files_to_modify=list(files or []),
    )


def _custom_rule(decompose, condition=None, name="custom", priority=0):
    return DecompositionRule(
        name=name,
        priority=priority,
        strategy=DecompositionStrategy.CUSTOM,
        condition=condition or (lambda item, md: True),
        decompose=decompose,
    )


@pytest.fixture
def engine(event_log):
    return DecompositionEngine(events=event_log)


class TestNeedsDecomposition:
    """Tests for the oversized check."""

    def test_minutes_threshold(self, engine):
        assert engine.needs_decomposition(make_work_item(estimated_minutes=46)) is True
        assert engine.needs_decomposition(make_work_item(estimated_minutes=45)) is False

    def test_file_threshold(self, engine):
        files = ["a.py", "b.py", "c.py", "d.py"]
        assert engine.needs_decomposition(make_work_item(files=files)) is True
        assert engine.needs_decomposition(make_work_item(files=files[:3])) is False

    def test_none_item(self, engine):
        assert engine.needs_decomposition(None) is False

    @pytest.mark.parametrize("minutes", [float("inf"), float("nan")])
    def test_non_finite_minutes_are_ignored(self, engine, minutes):
        """A non-finite estimate neither raises nor counts as oversized."""
        assert engine.needs_decomposition(make_work_item(estimated_minutes=minutes)) is False
        files = ["a.py", "b.py", "c.py", "d.py"]
        result = engine.decompose(make_work_item(estimated_minutes=minutes, files=files))
        assert result is not None
        assert all(15 <= st.estimated_minutes <= 45 for st in result.subtasks)


class TestDecompose:
    """Tests for single-level decomposition."""

    def test_five_files_split_by_file(self, engine):
        """Five files and 60 minutes give five file subtasks plus integration."""
        item = make_work_item(
            files=["a.py", "b.py", "c.py", "d.py", "e.py"],
            estimated_minutes=60,
        )
        result = engine.decompose(item)

        assert result is not None
        assert result.strategy == "by_file"
        assert len(result.subtasks) == 6
        assert result.original_id == "task-1"
        assert 'Matched rule "file-count-split"' in result.reason
        assert result.estimated_total_minutes == 90
        assert result.is_fully_covered is True

    def test_no_signals_split_by_phase(self, engine):
        """A 90-minute item with no other signals splits into four phases."""
        result = engine.decompose(make_work_item(estimated_minutes=90))

        assert result.strategy == "by_phase"
        assert [st.title.split(" for ")[0] for st in result.subtasks] == [
            "Setup",
            "Core implementation",
            "Testing",
            "Integration",
        ]
        assert result.estimated_total_minutes >= 72

    def test_minutes_clamped_into_bounds(self, engine):
        """Every subtask lands in [15, 45], including the short integration phase."""
        result = engine.decompose(make_work_item(estimated_minutes=90))
        assert all(15 <= st.estimated_minutes <= 45 for st in result.subtasks)
        assert result.subtasks[-1].estimated_minutes == 15

    def test_custom_minutes_clamped(self, engine):
        engine.register_rule(_custom_rule(lambda item, md: [_subtask("a", 1), _subtask("b", 500)]))
        result = engine.decompose(make_work_item())
        assert [st.estimated_minutes for st in result.subtasks] == [15, 45]

    def test_atomic_item_returns_none(self, engine):
        assert engine.decompose(make_work_item(estimated_minutes=30)) is None

    def test_none_item_returns_none(self, engine):
        assert engine.decompose(None) is None

    @pytest.mark.parametrize("depth", [3, 4, 10])
    def test_depth_ceiling(self, engine, depth):
        """Depth at or beyond the ceiling always returns None."""
        item = make_work_item(estimated_minutes=90)
        assert engine.decompose(item, depth=depth) is None

    def test_below_ceiling_still_decomposes(self, engine):
        assert engine.decompose(make_work_item(estimated_minutes=90), depth=2) is not None

    def test_custom_rule_runs_first(self, engine):
        """A rule registered ahead of the built-ins wins."""
        engine.register_rule(_custom_rule(lambda item, md: [_subtask("only")], name="mine"))
        result = engine.decompose(make_work_item(estimated_minutes=90))

        assert result.strategy == "custom"
        assert result.reason == 'Matched rule "mine": custom rule "mine" matched'

    def test_throwing_rule_is_skipped(self, engine, event_log):
        """A rule that raises is logged, recorded, and the next rule is tried."""
        def boom(item, md):
            raise RuntimeError("boom")

        engine.register_rule(_custom_rule(boom, name="broken"))
        result = engine.decompose(make_work_item(estimated_minutes=90))

        assert result.strategy == "by_phase"
        errors = event_log.query(action=EventType.RULE_ERROR)
        assert len(errors) == 1
        assert "broken: boom" in errors[0].detail

    def test_throwing_condition_is_skipped(self, engine):
        def bad_condition(item, md):
            raise ValueError("bad")

        engine.register_rule(_custom_rule(lambda item, md: [_subtask("x")], condition=bad_condition))
        assert engine.decompose(make_work_item(estimated_minutes=90)).strategy == "by_phase"

    def test_empty_result_is_non_match(self, engine):
        engine.register_rule(_custom_rule(lambda item, md: []))
        engine.register_rule(_custom_rule(lambda item, md: None, name="none"))
        assert engine.decompose(make_work_item(estimated_minutes=90)).strategy == "by_phase"

    def test_coverage_shortfall(self, engine):
        """Subtasks covering less than 80% of the estimate are flagged."""
        engine.register_rule(_custom_rule(lambda item, md: [_subtask("tiny", 15)]))
        result = engine.decompose(make_work_item(estimated_minutes=90))
        assert result.is_fully_covered is False

    def test_no_estimate_counts_as_covered(self, engine):
        engine.register_rule(_custom_rule(lambda item, md: [_subtask("tiny", 15)]))
        assert engine.decompose(make_work_item()).is_fully_covered is True

    def test_records_decomposition(self, engine, event_log):
        engine.decompose(make_work_item(estimated_minutes=90))
        entries = event_log.query(action=EventType.TASK_DECOMPOSED)
        assert len(entries) == 1
        assert entries[0].actor == "decomposition-engine"

    def test_invalid_rule_registration_ignored(self, engine):
        assert engine.register_rule(_custom_rule(lambda item, md: [], name="")) is False
        assert len(engine.rule_set) == 6


class TestDecomposeRecursive:
    """Tests for recursive decomposition."""

    def _split_once(self):
        return _custom_rule(
            lambda item, md: [
                _subtask("wide", 30, files=["a.py", "b.py", "c.py", "d.py"]),
                _subtask("narrow", 20),
            ],
            condition=lambda item, md: item.parent_id is None,
        )

    def test_oversized_children_are_split(self, engine):
        engine.register_rule(self._split_once())
        results = engine.decompose_recursive(make_work_item())

        assert [r.strategy for r in results] == ["custom", "by_file"]
        assert len(results[1].subtasks) == 5

    def test_bounded_by_depth(self, event_log):
        engine = DecompositionEngine(config=DecompositionConfig(max_depth=1), events=event_log)
        engine.register_rule(self._split_once())
        assert len(engine.decompose_recursive(make_work_item())) == 1

    def test_atomic_item(self, engine):
        assert engine.decompose_recursive(make_work_item()) == []
