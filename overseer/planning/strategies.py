"""Built-in decomposition strategies.

Each strategy is a pure function of (WorkItem, TaskMetadata) returning the
candidate subtask list. Subtask dependencies reference sibling titles; the
engine clamps minutes afterwards, so strategies only need to aim inside
the bounds.
"""

import json
import math
import re
from collections import Counter
from typing import Optional

from overseer.core.models import (
    SubtaskCategory,
    SubtaskDefinition,
    TaskMetadata,
    TaskPriority,
    WorkItem,
)
from overseer.planning.metadata import MetadataExtractor, gather_text

MIN_SUBTASK_MINUTES = 15
MAX_SUBTASK_MINUTES = 45

# Phase split durations
SETUP_MINUTES = 15
TESTING_MINUTES = 15
INTEGRATION_MINUTES = 10

_PASCAL_CASE = re.compile(r"\b([A-Z][a-z]+(?:[A-Z][a-z]+)+)\b")

_property_extractor = MetadataExtractor()


def clamp(value: int, low: int = MIN_SUBTASK_MINUTES, high: int = MAX_SUBTASK_MINUTES) -> int:
    """Clamp a minute count into [low, high]."""
    return max(low, min(high, value))


def chunk(items: list, size: int) -> list[list]:
    """Split a list into consecutive chunks of ``size``."""
    return [items[i:i + size] for i in range(0, len(items), size)]


def summarize_list(items: list[str]) -> str:
    """Summarize a list for a title, e.g. ``a, b, c (+2 more)``."""
    if len(items) <= 3:
        return ", ".join(items)
    return f"{', '.join(items[:3])} (+{len(items) - 3} more)"


def basename(file_path: str) -> str:
    """File name of a slash or backslash separated path."""
    if not file_path:
        return "unknown"
    return file_path.replace("\\", "/").split("/")[-1] or file_path


def infer_component_category(batch: list[str]) -> str:
    """Infer a category label for a batch of component names."""
    text = " ".join(batch).lower()
    if re.search(r"nav|menu|header|footer|sidebar|breadcrumb", text):
        return "navigation"
    if re.search(r"form|input|select|checkbox|radio|toggle|slider", text):
        return "form"
    if re.search(r"modal|dialog|toast|alert|snackbar|tooltip", text):
        return "feedback"
    if re.search(r"card|list|table|grid|accordion|carousel", text):
        return "data-display"
    if re.search(r"button|badge|chip|avatar|icon", text):
        return "basic"
    return "general"


def extract_component_names(text: str) -> list[str]:
    """PascalCase component names in order of first appearance."""
    names: list[str] = []
    for name in _PASCAL_CASE.findall(text):
        if name not in names:
            names.append(name)
    return names


def _priority(item: WorkItem, default: TaskPriority = TaskPriority.P2) -> TaskPriority:
    return item.priority if isinstance(item.priority, TaskPriority) else default


def total_minutes(item: WorkItem, default: int) -> int:
    """The item's estimate, or ``default`` when absent or not numeric."""
    minutes = item.estimated_minutes
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
        return default
    if not math.isfinite(minutes):
        return default
    return int(minutes)


def _declared_files(item: WorkItem) -> list[str]:
    if not isinstance(item.files, list):
        return []
    return [f for f in item.files if isinstance(f, str)]


def _context(item: WorkItem, **fields) -> str:
    return json.dumps({"parent_task": item.title, **fields})


def _file_labels(files: list[str]) -> list[str]:
    """Basename of each file, or the full path where basenames collide."""
    counts = Counter(basename(path) for path in files)
    return [basename(path) if counts[basename(path)] == 1 else path for path in files]


def decompose_by_file(item: WorkItem, metadata: TaskMetadata) -> list[SubtaskDefinition]:
    """One subtask per file, chained in order, then an integration subtask."""
    files = metadata.files
    per_file = clamp(total_minutes(item, 30) // (len(files) + 1))
    priority = _priority(item)

    names = _file_labels(files)

    subtasks: list[SubtaskDefinition] = []
    for i, path in enumerate(files):
        name = names[i]
        previous = [f"Implement changes in {names[i - 1]}"] if i > 0 else []
        subtasks.append(
            SubtaskDefinition(
                title=f"Implement changes in {name}",
                description=(
                    f'Apply the required changes to {path} as part of task "{item.title}". '
                    "Focus only on this file's modifications."
                ),
                priority=priority,
                estimated_minutes=per_file,
                acceptance_criteria=f"All changes in {name} compile and pass lint checks",
                dependencies=previous,
                files_to_modify=[path],
                context=_context(item, target_file=path),
                category=SubtaskCategory.IMPLEMENTATION,
            )
        )

    subtasks.append(
        SubtaskDefinition(
            title=f'Integration and verification for "{item.title}"',
            description=(
                "Verify that all file-level changes integrate correctly. Run tests, "
                "check imports, and confirm acceptance criteria for the parent task."
            ),
            priority=priority,
            estimated_minutes=MIN_SUBTASK_MINUTES,
            acceptance_criteria="All modified files work together; tests pass; no broken imports",
            dependencies=[st.title for st in subtasks],
            context=_context(item, phase="integration"),
            category=SubtaskCategory.INTEGRATION,
        )
    )
    return subtasks


def decompose_by_component(item: WorkItem, metadata: TaskMetadata) -> list[SubtaskDefinition]:
    """Batches of components, chained in order, then a testing subtask.

    Names come from PascalCase words in the corpus; when there are none,
    synthetic ``Component_N`` names stand in for the counted components.
    """
    names = extract_component_names(gather_text(item))
    if not names:
        names = [f"Component_{i + 1}" for i in range(metadata.component_count)]

    batch_size = 5 if len(names) <= 16 else 8
    batches = chunk(names, batch_size)
    priority = _priority(item)

    def batch_title(batch: list[str]) -> str:
        return f"Implement {infer_component_category(batch)} components: {summarize_list(batch)}"

    subtasks: list[SubtaskDefinition] = []
    for i, batch in enumerate(batches):
        subtasks.append(
            SubtaskDefinition(
                title=batch_title(batch),
                description=(
                    f"Build and wire up the following components: {', '.join(batch)}. "
                    "Ensure each component matches design specs and has proper props/events."
                ),
                priority=priority,
                estimated_minutes=clamp(len(batch) * 5),
                acceptance_criteria=f"All {len(batch)} components render correctly and accept required props",
                dependencies=[batch_title(batches[i - 1])] if i > 0 else [],
                files_to_modify=list(metadata.files),
                context=_context(item, components=batch),
                category=SubtaskCategory.IMPLEMENTATION,
            )
        )

    subtasks.append(
        SubtaskDefinition(
            title=f'Test all components for "{item.title}"',
            description=(
                f"Write or update unit tests for all {len(names)} components. "
                "Verify rendering, prop handling, and event behavior."
            ),
            priority=TaskPriority.P2,
            estimated_minutes=clamp(len(batches) * 8),
            acceptance_criteria="All component tests pass with adequate coverage",
            dependencies=[st.title for st in subtasks],
            context=_context(item, phase="testing"),
            category=SubtaskCategory.TESTING,
        )
    )
    return subtasks


def decompose_by_property_group(item: WorkItem, metadata: TaskMetadata) -> list[SubtaskDefinition]:
    """One subtask per mentioned property group, then an integration subtask.

    Falls back to the phase split when no group matches.
    """
    groups = _property_extractor.property_groups(gather_text(item).lower())
    if not groups:
        return decompose_by_phase(item, metadata)

    per_group = clamp(total_minutes(item, 40) // (len(groups) + 1))
    priority = _priority(item)

    subtasks: list[SubtaskDefinition] = []
    for i, (group, props) in enumerate(groups):
        previous = [f"Implement {groups[i - 1][0]} properties"] if i > 0 else []
        subtasks.append(
            SubtaskDefinition(
                title=f"Implement {group} properties",
                description=(
                    f"Handle all {group}-related properties ({', '.join(props)}) "
                    f'for task "{item.title}".'
                ),
                priority=priority,
                estimated_minutes=per_group,
                acceptance_criteria=f"All {group} properties are correctly implemented and validated",
                dependencies=previous,
                files_to_modify=list(metadata.files),
                context=_context(item, property_group=group, properties=props),
                category=SubtaskCategory.IMPLEMENTATION,
            )
        )

    subtasks.append(
        SubtaskDefinition(
            title=f'Integrate and test property groups for "{item.title}"',
            description=(
                "Verify that all property groups work together correctly. "
                "Test interactions between property groups and edge cases."
            ),
            priority=priority,
            estimated_minutes=MIN_SUBTASK_MINUTES,
            acceptance_criteria="All property groups integrate correctly; no conflicts between groups",
            dependencies=[st.title for st in subtasks],
            context=_context(item, phase="integration"),
            category=SubtaskCategory.INTEGRATION,
        )
    )
    return subtasks


def decompose_by_phase(
    item: WorkItem, metadata: Optional[TaskMetadata] = None
) -> list[SubtaskDefinition]:
    """Fixed four-stage split: setup, core implementation, testing, integration."""
    total = total_minutes(item, 60)
    core_minutes = clamp(total - SETUP_MINUTES - TESTING_MINUTES - INTEGRATION_MINUTES)
    files = _declared_files(item)

    setup = f'Setup for "{item.title}"'
    core = f'Core implementation for "{item.title}"'
    testing = f'Testing for "{item.title}"'
    integration = f'Integration for "{item.title}"'

    return [
        SubtaskDefinition(
            title=setup,
            description=(
                "Prepare the development environment, create necessary file stubs, "
                "set up imports, and review existing code that will be modified."
            ),
            priority=_priority(item),
            estimated_minutes=SETUP_MINUTES,
            acceptance_criteria="All required files exist; imports are in place; environment is ready for implementation",
            files_to_modify=list(files),
            context=_context(item, phase="setup"),
            category=SubtaskCategory.SETUP,
        ),
        SubtaskDefinition(
            title=core,
            description=(
                "Implement the main logic and functionality described in the parent task. "
                "This is the primary coding work."
            ),
            priority=_priority(item, TaskPriority.P1),
            estimated_minutes=core_minutes,
            acceptance_criteria="Core functionality works as specified in the parent task acceptance criteria",
            dependencies=[setup],
            files_to_modify=list(files),
            context=_context(item, phase="implementation"),
            category=SubtaskCategory.IMPLEMENTATION,
        ),
        SubtaskDefinition(
            title=testing,
            description=(
                "Write unit tests, run existing tests, and verify that the implementation "
                "meets acceptance criteria without regressions."
            ),
            priority=TaskPriority.P2,
            estimated_minutes=TESTING_MINUTES,
            acceptance_criteria="All tests pass; no regressions introduced",
            dependencies=[core],
            context=_context(item, phase="testing"),
            category=SubtaskCategory.TESTING,
        ),
        SubtaskDefinition(
            title=integration,
            description=(
                "Wire up the implementation with the rest of the system. Verify imports, "
                "update exports, and confirm end-to-end functionality."
            ),
            priority=_priority(item),
            estimated_minutes=INTEGRATION_MINUTES,
            acceptance_criteria="Implementation is fully integrated; no broken imports or type errors; build succeeds",
            dependencies=[testing],
            context=_context(item, phase="integration"),
            category=SubtaskCategory.INTEGRATION,
        ),
    ]


def decompose_by_dependency(item: WorkItem, metadata: TaskMetadata) -> list[SubtaskDefinition]:
    """Dependency clusters of 2 (3 past nine), chained, then a verification subtask."""
    deps = [d for d in item.dependencies if isinstance(d, str)] if isinstance(item.dependencies, list) else []
    clusters = chunk(deps, 2 if len(deps) <= 9 else 3)
    per_cluster = clamp(total_minutes(item, 45) // (len(clusters) + 1))
    priority = _priority(item)

    subtasks: list[SubtaskDefinition] = []
    for i, cluster in enumerate(clusters):
        previous = (
            [f"Handle dependency cluster {i}: {summarize_list(clusters[i - 1])}"] if i > 0 else []
        )
        subtasks.append(
            SubtaskDefinition(
                title=f"Handle dependency cluster {i + 1}: {summarize_list(cluster)}",
                description=(
                    f"Address the integration points for dependencies: {', '.join(cluster)}. "
                    "Ensure interfaces match and data flows correctly."
                ),
                priority=priority,
                estimated_minutes=per_cluster,
                acceptance_criteria=f"All dependencies in cluster ({', '.join(cluster)}) are properly integrated",
                dependencies=previous,
                files_to_modify=list(metadata.files),
                context=_context(item, dependency_cluster=cluster),
                category=SubtaskCategory.IMPLEMENTATION,
            )
        )

    subtasks.append(
        SubtaskDefinition(
            title=f'Verify all dependency integrations for "{item.title}"',
            description=(
                f"Run full test suite and verify that all {len(deps)} dependencies "
                "are correctly wired."
            ),
            priority=priority,
            estimated_minutes=MIN_SUBTASK_MINUTES,
            acceptance_criteria="All dependency integrations verified; tests pass",
            dependencies=[st.title for st in subtasks],
            context=_context(item, phase="dependency-verification"),
            category=SubtaskCategory.TESTING,
        )
    )
    return subtasks


def decompose_by_complexity(item: WorkItem, metadata: TaskMetadata) -> list[SubtaskDefinition]:
    """Core logic over the first half of files, then edge cases, then final testing."""
    half_minutes = clamp(total_minutes(item, 60) // 2)

    files = metadata.files
    midpoint = (len(files) + 1) // 2
    first_half = files[:midpoint] or _declared_files(item)
    second_half = files[midpoint:] or _declared_files(item)

    core = f'Core logic and structure for "{item.title}"'
    edges = f'Edge cases and polish for "{item.title}"'

    return [
        SubtaskDefinition(
            title=core,
            description=(
                "Implement the fundamental logic, data structures, and primary code paths. "
                "Focus on the happy path and core architecture."
            ),
            priority=_priority(item, TaskPriority.P1),
            estimated_minutes=half_minutes,
            acceptance_criteria="Core logic compiles and handles the primary use case correctly",
            files_to_modify=list(first_half),
            context=_context(item, phase="core-logic"),
            category=SubtaskCategory.IMPLEMENTATION,
        ),
        SubtaskDefinition(
            title=edges,
            description=(
                "Handle error conditions, edge cases, null checks, boundary conditions, "
                "logging, and code quality improvements."
            ),
            priority=_priority(item),
            estimated_minutes=half_minutes,
            acceptance_criteria="All edge cases handled; error paths tested; code is production-ready",
            dependencies=[core],
            files_to_modify=list(second_half),
            context=_context(item, phase="edge-cases-polish"),
            category=SubtaskCategory.IMPLEMENTATION,
        ),
        SubtaskDefinition(
            title=f'Final testing for "{item.title}"',
            description=(
                "Run comprehensive tests covering both core logic and edge cases. "
                "Verify full acceptance criteria."
            ),
            priority=TaskPriority.P2,
            estimated_minutes=MIN_SUBTASK_MINUTES,
            acceptance_criteria="All tests pass; acceptance criteria verified",
            dependencies=[edges],
            context=_context(item, phase="final-testing"),
            category=SubtaskCategory.TESTING,
        ),
    ]
