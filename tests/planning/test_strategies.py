"""Tests for the built-in decomposition strategies."""

import json

from conftest import make_work_item
from overseer.core.models import SubtaskCategory, TaskMetadata, TaskPriority
from overseer.planning import strategies
from overseer.planning.metadata import extract_metadata


class TestHelpers:
    """Tests for strategy helper functions."""

    def test_clamp(self):
        assert strategies.clamp(5) == 15
        assert strategies.clamp(30) == 30
        assert strategies.clamp(90) == 45

    def test_summarize_list(self):
        """Long lists are truncated with a count."""
        assert strategies.summarize_list(["a", "b"]) == "a, b"
        assert strategies.summarize_list(["a", "b", "c", "d", "e"]) == "a, b, c (+2 more)"

    def test_basename(self):
        assert strategies.basename("src/app/main.py") == "main.py"
        assert strategies.basename("C:\\repo\\main.py") == "main.py"
        assert strategies.basename("") == "unknown"

    def test_infer_component_category(self):
        assert strategies.infer_component_category(["NavBar", "SideMenu"]) == "navigation"
        assert strategies.infer_component_category(["LoginForm"]) == "form"
        assert strategies.infer_component_category(["ConfirmDialog"]) == "feedback"
        assert strategies.infer_component_category(["UserCard"]) == "data-display"
        assert strategies.infer_component_category(["IconButton"]) == "basic"
        assert strategies.infer_component_category(["Thing"]) == "general"

    def test_total_minutes_rejects_non_numbers(self):
        """Non-numeric and non-finite estimates use the default."""
        assert strategies.total_minutes(make_work_item(estimated_minutes=50), 30) == 50
        assert strategies.total_minutes(make_work_item(estimated_minutes=None), 30) == 30
        assert strategies.total_minutes(make_work_item(estimated_minutes=True), 30) == 30
        assert strategies.total_minutes(make_work_item(estimated_minutes=float("nan")), 30) == 30


class TestDecomposeByFile:
    """Tests for the per-file split."""

    def test_chain_and_integration(self):
        """Each file depends on the previous; integration depends on all."""
        files = ["a.py", "b.py", "c.py", "d.py"]
        item = make_work_item(files=files, estimated_minutes=100)
        subtasks = strategies.decompose_by_file(item, extract_metadata(item))

        assert len(subtasks) == 5
        assert subtasks[0].dependencies == []
        assert subtasks[1].dependencies == ["Implement changes in a.py"]
        assert subtasks[-1].title == 'Integration and verification for "Refactor billing"'
        assert subtasks[-1].dependencies == [st.title for st in subtasks[:-1]]
        assert subtasks[-1].category == SubtaskCategory.INTEGRATION
        assert all(st.estimated_minutes == 20 for st in subtasks[:-1])

    def test_context_names_target_file(self):
        item = make_work_item(files=["a.py", "b.py", "c.py", "d.py"])
        subtasks = strategies.decompose_by_file(item, extract_metadata(item))
        context = json.loads(subtasks[0].context)
        assert context == {"parent_task": "Refactor billing", "target_file": "a.py"}
        assert subtasks[0].files_to_modify == ["a.py"]

    def test_clashing_basenames_use_full_path(self):
        """Files sharing a basename get distinct titles."""
        item = make_work_item(files=["a/index.ts", "b/index.ts", "c.ts", "d.ts"])
        subtasks = strategies.decompose_by_file(item, extract_metadata(item))

        titles = [st.title for st in subtasks[:-1]]
        assert titles == [
            "Implement changes in a/index.ts",
            "Implement changes in b/index.ts",
            "Implement changes in c.ts",
            "Implement changes in d.ts",
        ]
        assert subtasks[1].dependencies == ["Implement changes in a/index.ts"]
        assert len(set(subtasks[-1].dependencies)) == 4


class TestDecomposeByComponent:
    """Tests for the component batch split."""

    def test_pascal_case_names_batched(self):
        """Twelve named components form batches of five plus a test subtask."""
        names = [f"Widget{chr(65 + i)}x" for i in range(12)]
        item = make_work_item(description=" ".join(names))
        metadata = TaskMetadata(component_count=12, is_design_task=True)
        subtasks = strategies.decompose_by_component(item, metadata)

        assert len(subtasks) == 4
        assert subtasks[1].dependencies == [subtasks[0].title]
        assert subtasks[-1].title == 'Test all components for "Refactor billing"'
        assert subtasks[-1].category == SubtaskCategory.TESTING
        assert subtasks[-1].estimated_minutes == 24

    def test_synthetic_names_when_none_found(self):
        """Without PascalCase names, counted components get synthetic names."""
        item = make_work_item(title="add widgets", description="lots of widgets")
        metadata = TaskMetadata(component_count=11, is_design_task=True)
        subtasks = strategies.decompose_by_component(item, metadata)

        assert "Component_1" in subtasks[0].title
        assert len(subtasks) == 4  # 5 + 5 + 1 batches and the test subtask


class TestDecomposeByPropertyGroup:
    """Tests for the property group split."""

    def test_one_subtask_per_group(self):
        item = make_work_item(
            description="Set width and height, then color and opacity",
            estimated_minutes=90,
        )
        subtasks = strategies.decompose_by_property_group(item, extract_metadata(item))

        titles = [st.title for st in subtasks]
        assert titles[:2] == ["Implement sizing properties", "Implement style properties"]
        assert subtasks[1].dependencies == ["Implement sizing properties"]
        assert titles[-1] == 'Integrate and test property groups for "Refactor billing"'
        assert subtasks[0].estimated_minutes == 30

    def test_falls_back_to_phase(self):
        """No matched group falls back to the phase split."""
        item = make_work_item()
        subtasks = strategies.decompose_by_property_group(item, extract_metadata(item))
        assert [st.category for st in subtasks] == [
            SubtaskCategory.SETUP,
            SubtaskCategory.IMPLEMENTATION,
            SubtaskCategory.TESTING,
            SubtaskCategory.INTEGRATION,
        ]


class TestDecomposeByPhase:
    """Tests for the four-phase split."""

    def test_phases_and_chain(self):
        item = make_work_item(estimated_minutes=90)
        subtasks = strategies.decompose_by_phase(item)

        assert [st.title for st in subtasks] == [
            'Setup for "Refactor billing"',
            'Core implementation for "Refactor billing"',
            'Testing for "Refactor billing"',
            'Integration for "Refactor billing"',
        ]
        assert [st.estimated_minutes for st in subtasks] == [15, 45, 15, 10]
        for previous, current in zip(subtasks, subtasks[1:]):
            assert current.dependencies == [previous.title]

    def test_default_total(self):
        """Without an estimate, the core phase gets 60 - 40 minutes."""
        subtasks = strategies.decompose_by_phase(make_work_item())
        assert subtasks[1].estimated_minutes == 20

    def test_testing_phase_is_p2(self):
        subtasks = strategies.decompose_by_phase(make_work_item(priority=TaskPriority.P1))
        assert subtasks[0].priority == TaskPriority.P1
        assert subtasks[2].priority == TaskPriority.P2


class TestDecomposeByDependency:
    """Tests for the dependency cluster split."""

    def test_clusters_of_two(self):
        deps = [f"dep-{i}" for i in range(6)]
        item = make_work_item(dependencies=deps, estimated_minutes=80)
        subtasks = strategies.decompose_by_dependency(item, extract_metadata(item))

        assert len(subtasks) == 4
        assert subtasks[0].title == "Handle dependency cluster 1: dep-0, dep-1"
        assert subtasks[1].dependencies == [subtasks[0].title]
        assert subtasks[0].estimated_minutes == 20
        assert subtasks[-1].title == 'Verify all dependency integrations for "Refactor billing"'

    def test_clusters_of_three_past_nine(self):
        deps = [f"dep-{i}" for i in range(10)]
        item = make_work_item(dependencies=deps)
        subtasks = strategies.decompose_by_dependency(item, extract_metadata(item))
        assert len(subtasks) == 5  # 3 + 3 + 3 + 1 and the verification


class TestDecomposeByComplexity:
    """Tests for the complexity split."""

    def test_halves_of_files(self):
        files = ["a.py", "b.py", "c.py", "d.py", "e.py", "f.py"]
        item = make_work_item(files=files, estimated_minutes=70)
        subtasks = strategies.decompose_by_complexity(item, extract_metadata(item))

        assert len(subtasks) == 3
        assert subtasks[0].files_to_modify == ["a.py", "b.py", "c.py"]
        assert subtasks[1].files_to_modify == ["d.py", "e.py", "f.py"]
        assert subtasks[0].estimated_minutes == 35
        assert subtasks[2].dependencies == [subtasks[1].title]
