from __future__ import annotations

from typing import Optional

from weighted_hierarchy.core.capacity.tracker import AllocationState, CapacityTracker
from weighted_hierarchy.core.errors import HierarchyValidationError
from weighted_hierarchy.core.kpi.contribution import validate_task_links
from weighted_hierarchy.core.model import Status
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree


# Hierarchy lint rules, run on a tree that already passed validation:
# - L_CAPACITY_VIOLATION: direct children of a node sum above 100
# - L_INCOMPLETE_ALLOCATION: children exist but sum below 100 (progress under-counts)
# - L_EMPTY_DECOMPOSITION: milestone/sub-milestone without children (progress stuck at 0)
# - L_TASK_MISSING_KPI: an assignee has no linked KPI
# - L_KPI_SPLIT: an assignee's KPI contribution weights do not total 100
# - L_STATUS_PROGRESS_MISMATCH: Completed task below 100, or Not Started task above 0


def lint_hierarchy(tree: HierarchyTree, *, file: Optional[str] = None) -> list[HierarchyValidationError]:
    """Lint a tree.

    Lint enforces the decomposition standards that validation tolerates, such
    as over-allocated levels in data that came from outside.
    """

    errors: list[HierarchyValidationError] = []
    tracker = CapacityTracker(tree)

    def add(code: str, message: str, node_id: str, path: Optional[str] = None) -> None:
        errors.append(
            HierarchyValidationError(
                code=code,
                message=message,
                node_id=node_id,
                path=file if path is None else (f"{file}:{path}" if file else path),
            )
        )

    for v in tracker.diagnostics():
        add("L_CAPACITY_VIOLATION", v.message, v.node_id or tree.root_id)

    for node in tree.walk():
        if node.is_task:
            for e in validate_task_links(node, tolerance=tree.tolerance):
                add(e.code, e.message, node.id, e.path)
            if node.status == Status.COMPLETED and node.progress < 100:
                add(
                    "L_STATUS_PROGRESS_MISMATCH",
                    f"task is Completed but progress is {node.progress:g}",
                    node.id,
                )
            elif node.status == Status.NOT_STARTED and node.progress > 0:
                add(
                    "L_STATUS_PROGRESS_MISMATCH",
                    f"task is Not Started but progress is {node.progress:g}",
                    node.id,
                )
            continue

        state = tracker.state_for(node.id)
        if state == AllocationState.EMPTY:
            add("L_EMPTY_DECOMPOSITION", f"{node.kind} has no sub-milestones or tasks", node.id)
        elif state == AllocationState.PARTIALLY_ALLOCATED:
            add(
                "L_INCOMPLETE_ALLOCATION",
                f"children allocate {tracker.allocated_for(node.id):g}% "
                f"({tracker.remaining_for(node.id):g}% unallocated)",
                node.id,
            )

    return _sorted(errors)


def _sorted(errors: list[HierarchyValidationError]) -> list[HierarchyValidationError]:
    return sorted(errors, key=lambda e: (e.path or "", e.node_id or "", e.code))
