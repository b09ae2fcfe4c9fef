"""Tests for turning decompositions into store writes."""

import pytest

from conftest import InMemoryWorkItemStore, make_work_item
from overseer.core.models import DecompositionResult, SubtaskDefinition, TaskPriority
from overseer.planning.applier import apply_decomposition, build_instructions
from overseer.planning.decomposition import DecompositionEngine


@pytest.fixture
def parent():
    return make_work_item(estimated_minutes=90, plan_id="plan-1")


@pytest.fixture
def result(parent):
    return DecompositionEngine().decompose(parent)


class TestBuildInstructions:
    """Tests for build_instructions."""

    def test_creates_one_entry_per_subtask(self, parent, result):
        instructions = build_instructions(parent, result)

        assert len(instructions.creates) == 4
        first = instructions.creates[0]
        assert "id" not in first
        assert first["parent_id"] == "task-1"
        assert first["plan_id"] == "plan-1"
        assert first["status"] == "not_started"
        assert first["category"] == "setup"

    def test_dependencies_are_sibling_titles(self, parent, result):
        instructions = build_instructions(parent, result)
        assert instructions.creates[1]["dependencies"] == [result.subtasks[0].title]

    def test_parent_marked_decomposed(self, parent, result):
        assert build_instructions(parent, result).parent_update == {"status": "decomposed"}


class TestApplyDecomposition:
    """Tests for apply_decomposition."""

    def test_creates_and_wires_subtasks(self, parent, result):
        store = InMemoryWorkItemStore([parent])
        ids = apply_decomposition(store, parent, result)

        assert ids == ["sub-1", "sub-2", "sub-3", "sub-4"]
        assert store.items["sub-1"]["dependencies"] == []
        assert store.items["sub-2"]["dependencies"] == ["sub-1"]
        assert store.items["sub-4"]["dependencies"] == ["sub-3"]

    def test_parent_no_longer_executable(self, parent, result):
        store = InMemoryWorkItemStore([parent])
        apply_decomposition(store, parent, result)

        stored_parent = store.get("task-1")
        assert stored_parent.status.value == "decomposed"
        assert stored_parent.is_executable is False
        assert len(store.list_by_parent("task-1")) == 4

    def test_requires_parent_id(self, result):
        orphan = make_work_item(id=None, estimated_minutes=90)
        with pytest.raises(ValueError):
            apply_decomposition(InMemoryWorkItemStore(), orphan, result)

    def test_same_basename_files_wire_every_sibling(self):
        item = make_work_item(files=["a/index.ts", "b/index.ts", "c.ts", "d.ts"])
        result = DecompositionEngine().decompose(item)
        store = InMemoryWorkItemStore([item])

        ids = apply_decomposition(store, item, result)

        assert store.items[ids[-1]]["dependencies"] == ["sub-1", "sub-2", "sub-3", "sub-4"]
        assert store.items["sub-2"]["dependencies"] == ["sub-1"]

    def test_duplicate_titles_resolve_to_all_siblings(self, parent):
        """A title shared by several siblings depends on each of them."""
        subtasks = [
            SubtaskDefinition("Same", "", TaskPriority.P2, 20, ""),
            SubtaskDefinition("Same", "", TaskPriority.P2, 20, ""),
            SubtaskDefinition("Wrap up", "", TaskPriority.P2, 15, "", dependencies=["Same", "Same"]),
        ]
        result = DecompositionResult(
            original_id="task-1",
            subtasks=subtasks,
            strategy="custom",
            reason="r",
            estimated_total_minutes=55,
            is_fully_covered=True,
        )
        store = InMemoryWorkItemStore([parent])

        apply_decomposition(store, parent, result)

        assert store.items["sub-3"]["dependencies"] == ["sub-1", "sub-2"]
        assert store.items["sub-1"]["dependencies"] == []
