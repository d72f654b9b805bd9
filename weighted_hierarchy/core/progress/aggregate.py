from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from weighted_hierarchy.core.config.engine_config import DEFAULT, EngineConfig
from weighted_hierarchy.core.model import ROOT_WEIGHT, Assignee, CompletionStatus, Node, Status
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree


@dataclass(frozen=True)
class ProgressStatus:
    status: str
    label: str


@dataclass(frozen=True)
class HealthScore:
    health_score: int
    expected_progress: int
    label: str


def compute_progress(tree: HierarchyTree, node_id: Optional[str] = None) -> float:
    """Progress of node_id in [0, 100].

    Tasks report their stored progress. Milestones and sub-milestones report
    sum(child.weight / 100 * progress(child)): a weighted sum, not a mean, so
    unallocated weight contributes 0 and a node without children is at 0.
    Nothing is cached; every call walks the subtree.
    """
    return progress_report(tree, node_id)[node_id or tree.root_id]


def progress_report(tree: HierarchyTree, root_id: Optional[str] = None) -> dict[str, float]:
    """Computed progress for every node under root_id, in one post-order pass."""
    order = list(tree.walk(root_id))
    out: dict[str, float] = {}
    for node in reversed(order):
        if node.is_task:
            out[node.id] = _clamp(node.progress)
            continue
        out[node.id] = math.fsum(
            tree.nodes_by_id[cid].weight * out[cid] / ROOT_WEIGHT for cid in node.child_ids
        )
    return out


def project_progress(milestones: Iterable[tuple[float, float]]) -> float:
    """Weighted progress over (weight, progress) pairs of a project's milestones.

    Returns 0 when there are no milestones or their weights total 0.
    """
    pairs = list(milestones)
    if not pairs or math.fsum(w for w, _ in pairs) == 0:
        return 0.0
    return math.fsum(_clamp(p) * w / ROOT_WEIGHT for w, p in pairs)


def graded_progress(tasks: Iterable[Node], *, config: EngineConfig = DEFAULT) -> float:
    """Progress earned by graded completions: sum((grade/max_grade) * taskWeight), capped at 100.

    Only completed tasks count, and within them only approved assignees that
    carry a grade.
    """
    total = 0.0
    for node in tasks:
        if node.task is None or node.status != Status.COMPLETED:
            continue
        for a in node.task.assignees:
            if a.completion_status == CompletionStatus.APPROVED and a.completion_grade is not None:
                total += (a.completion_grade / config.max_grade) * node.weight
    return min(ROOT_WEIGHT, total)


def assignee_progress(assignees: list[Assignee]) -> float:
    """Share of assignees whose completion was approved, as a percentage."""
    if not assignees:
        return 0.0
    approved = sum(1 for a in assignees if a.completion_status == CompletionStatus.APPROVED)
    return approved / len(assignees) * ROOT_WEIGHT


def completion_summary(assignees: list[Assignee]) -> dict[str, int]:
    counts = Counter(a.completion_status.value for a in assignees)
    out = {"total": len(assignees)}
    for s in CompletionStatus:
        out[s.value] = counts.get(s.value, 0)
    return out


def is_overdue(due_date: Optional[date], status: Status, today: date) -> bool:
    if status == Status.COMPLETED or due_date is None:
        return False
    return due_date < today


def days_until_due(due_date: date, today: date) -> int:
    return (due_date - today).days


def progress_status(
    progress: float,
    due_date: Optional[date],
    today: date,
    *,
    config: EngineConfig = DEFAULT,
) -> ProgressStatus:
    if progress >= ROOT_WEIGHT:
        return ProgressStatus("completed", "Completed")
    if due_date is not None and due_date < today:
        return ProgressStatus("overdue", "Overdue")

    bands = config.progress_bands
    if progress >= bands["on_track"]:
        return ProgressStatus("on-track", "On Track")
    if progress >= bands["progressing"]:
        return ProgressStatus("progressing", "Progressing")
    if progress >= bands["slow"]:
        return ProgressStatus("slow", "Needs Attention")
    if progress > 0:
        return ProgressStatus("started", "Just Started")
    return ProgressStatus("not-started", "Not Started")


def health_score(
    progress: float,
    start: date,
    end: date,
    today: date,
    *,
    config: EngineConfig = DEFAULT,
) -> HealthScore:
    """Compare actual progress with the share of the schedule already elapsed."""
    total_days = (end - start).days
    elapsed = (today - start).days
    if total_days <= 0:
        expected = ROOT_WEIGHT if elapsed >= 0 else 0.0
    else:
        expected = min(ROOT_WEIGHT, max(0.0, elapsed / total_days * ROOT_WEIGHT))

    score = progress - expected
    bands = config.health_bands
    if score >= bands["ahead"]:
        label = "Ahead of Schedule"
    elif score >= bands["on_schedule"]:
        label = "On Schedule"
    elif score >= bands["slightly_behind"]:
        label = "Slightly Behind"
    else:
        label = "Significantly Behind"
    return HealthScore(health_score=round(score), expected_progress=round(expected), label=label)


def _clamp(value: float) -> float:
    return min(ROOT_WEIGHT, max(0.0, float(value)))
