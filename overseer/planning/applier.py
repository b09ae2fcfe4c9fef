"""Turn decomposition results into work-item store instructions.

The engine never writes to a store. build_instructions() describes the
writes as plain data; apply_decomposition() performs them through a
WorkItemStore for callers that want the wiring done for them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from overseer.core.models import DecompositionResult, TaskStatus, WorkItem
from overseer.core.stores import WorkItemStore

logger = logging.getLogger(__name__)


@dataclass
class StoreInstructions:
    """Writes needed to replace a work item with its subtasks.

    Attributes:
        creates: One field dict per subtask, in order. ``dependencies``
            holds sibling titles until the subtasks have ids.
        parent_update: Fields to update on the decomposed parent
    """

    creates: list[dict[str, Any]] = field(default_factory=list)
    parent_update: dict[str, Any] = field(default_factory=dict)


def build_instructions(item: WorkItem, result: DecompositionResult) -> StoreInstructions:
    """Describe the store writes for a decomposition.

    Args:
        item: The decomposed parent
        result: Decomposition of that parent

    Returns:
        StoreInstructions
    """
    creates = []
    for subtask in result.subtasks:
        fields = subtask.to_work_item(item).to_dict()
        fields.pop("id")
        fields["dependencies"] = list(subtask.dependencies)
        fields["status"] = TaskStatus.NOT_STARTED.value
        fields["category"] = subtask.category.value
        fields["files_to_create"] = list(subtask.files_to_create)
        creates.append(fields)

    return StoreInstructions(
        creates=creates,
        parent_update={"status": TaskStatus.DECOMPOSED.value},
    )


def apply_decomposition(
    store: WorkItemStore, item: WorkItem, result: DecompositionResult
) -> list[str]:
    """Create the subtasks and mark the parent decomposed.

    Sibling dependency titles are resolved to the created ids. A title
    shared by several siblings resolves to all of them; titles that name no
    sibling are dropped.

    Args:
        store: Work-item store to write through
        item: The decomposed parent (must have an id)
        result: Decomposition of that parent

    Returns:
        Created subtask ids, in subtask order

    Raises:
        ValueError: If the parent has no id
    """
    if not item.id:
        raise ValueError("Cannot apply a decomposition to a work item without an id")

    instructions = build_instructions(item, result)

    ids_by_title: dict[str, list[str]] = {}
    created: list[tuple[str, list[str]]] = []
    for fields in instructions.creates:
        titles = fields["dependencies"]
        fields = {**fields, "dependencies": []}
        new_id = store.create(fields)
        ids_by_title.setdefault(fields["title"], []).append(new_id)
        created.append((new_id, titles))

    for new_id, titles in created:
        dep_ids: list[str] = []
        for title in titles:
            for dep_id in ids_by_title.get(title, []):
                if dep_id != new_id and dep_id not in dep_ids:
                    dep_ids.append(dep_id)
        if dep_ids:
            store.update(new_id, {"dependencies": dep_ids})

    store.update(item.id, instructions.parent_update)
    logger.info(f"Applied decomposition of {item.id}: created {len(created)} subtasks")
    return [new_id for new_id, _ in created]
