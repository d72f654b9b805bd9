from __future__ import annotations

from typing import Iterable

from weighted_hierarchy.core.config.engine_config import DEFAULT, EngineConfig
from weighted_hierarchy.core.errors import InvalidTransition, NotAuthorized, NotFound
from weighted_hierarchy.core.kpi.contribution import KPIKey, check_grade, contributions_for_assignee
from weighted_hierarchy.core.model import Assignee, CompletionStatus, Node, RequestContext, Status
from weighted_hierarchy.core.progress.aggregate import assignee_progress
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree


# Assignee lifecycle: pending -> submitted -> approved
#                                      \-> rejected -> submitted ...


def submit_completion(
    tree: HierarchyTree,
    task_id: str,
    ctx: RequestContext,
    *,
    notes: str = "",
    documents: Iterable[str] = (),
) -> Assignee:
    """The calling user marks their part of a task as done."""
    node = _task(tree, task_id)
    assignee = _assignee(node, ctx.user_id)
    if assignee.completion_status not in (CompletionStatus.PENDING, CompletionStatus.REJECTED):
        raise InvalidTransition(
            message=f"cannot submit from {assignee.completion_status.value}",
            node_id=task_id,
        )
    assignee.completion_status = CompletionStatus.SUBMITTED
    assignee.completion_notes = notes or None
    assignee.completion_documents = list(documents)
    _refresh(tree, node)
    return assignee


def approve_completion(
    tree: HierarchyTree,
    task_id: str,
    assignee_id: str,
    grade: float,
    ctx: RequestContext,
    *,
    config: EngineConfig = DEFAULT,
) -> dict[KPIKey, float]:
    """Grade a submitted completion and return the KPI deltas it earns."""
    _require_supervisor(ctx, task_id)
    g = check_grade(grade, config=config)
    node = _task(tree, task_id)
    assignee = _assignee(node, assignee_id)
    if assignee.completion_status != CompletionStatus.SUBMITTED:
        raise InvalidTransition(
            message=f"cannot approve from {assignee.completion_status.value}",
            node_id=task_id,
        )
    assignee.completion_status = CompletionStatus.APPROVED
    assignee.completion_grade = g
    _refresh(tree, node)
    return contributions_for_assignee(node, assignee, config=config)


def reject_completion(
    tree: HierarchyTree,
    task_id: str,
    assignee_id: str,
    ctx: RequestContext,
    *,
    reason: str = "",
) -> Assignee:
    _require_supervisor(ctx, task_id)
    node = _task(tree, task_id)
    assignee = _assignee(node, assignee_id)
    if assignee.completion_status != CompletionStatus.SUBMITTED:
        raise InvalidTransition(
            message=f"cannot reject from {assignee.completion_status.value}",
            node_id=task_id,
        )
    assignee.completion_status = CompletionStatus.REJECTED
    if reason:
        assignee.completion_notes = reason
    _refresh(tree, node)
    return assignee


def _refresh(tree: HierarchyTree, node: Node) -> None:
    assert node.task is not None
    assignees = node.task.assignees
    if assignees and all(a.completion_status == CompletionStatus.APPROVED for a in assignees):
        tree.set_task_status(node.id, Status.COMPLETED)
        return
    progress = assignee_progress(assignees)
    if any(a.completion_status == CompletionStatus.SUBMITTED for a in assignees):
        tree.set_task_status(node.id, Status.PENDING_COMPLETION_APPROVAL, progress)
    else:
        tree.set_task_status(node.id, Status.IN_PROGRESS, progress)


def _task(tree: HierarchyTree, task_id: str) -> Node:
    node = tree.get(task_id)
    if node.task is None:
        raise InvalidTransition(message=f"{task_id} is not a task", node_id=task_id)
    return node


def _assignee(node: Node, user_id: str) -> Assignee:
    assert node.task is not None
    assignee = node.task.assignee(user_id)
    if assignee is None:
        raise NotFound(message=f"{user_id} is not assigned to {node.id}", node_id=node.id)
    return assignee


def _require_supervisor(ctx: RequestContext, task_id: str) -> None:
    if not ctx.is_supervisor:
        raise NotAuthorized(
            message=f"{ctx.user_id} ({ctx.role}) cannot review completions",
            node_id=task_id,
        )
