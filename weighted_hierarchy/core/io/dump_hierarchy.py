from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Optional

import yaml

from weighted_hierarchy.core.model import Node
from weighted_hierarchy.core.progress.aggregate import progress_report
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree

logger = logging.getLogger(__name__)


def tree_to_dict(tree: HierarchyTree, root_id: Optional[str] = None) -> dict[str, Any]:
    """Serialize to the hierarchy wire shape, with derived progress filled in.

    The output loads back through validate_hierarchy unchanged.
    """
    progress = progress_report(tree, root_id)
    root = tree.get(root_id or tree.root_id)
    task_counts = _task_counts(tree, root.id)

    out = _node_dict(root, progress[root.id], task_counts)
    # (node, its dict) pairs; children are appended in order.
    stack: list[tuple[Node, dict[str, Any]]] = [(root, out)]
    while stack:
        node, d = stack.pop()
        for child in tree.children(node.id):
            cd = _node_dict(child, progress[child.id], task_counts)
            d["tasks" if child.is_task else "subMilestones"].append(cd)
            if not child.is_task:
                stack.append((child, cd))
    return out


def dump_hierarchy_yaml(tree: HierarchyTree, path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(tree_to_dict(tree), f, sort_keys=False, default_flow_style=False, allow_unicode=True)
    logger.debug("wrote %d nodes to %s", len(tree), p)


def _node_dict(node: Node, progress: float, task_counts: dict[str, int]) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": node.id,
        "title": node.title,
    }
    if node.description:
        d["description"] = node.description
    d["taskWeight" if node.is_task else "weight"] = _num(node.weight)
    d["progress"] = _num(round(progress, 4))
    d["status"] = node.status.value
    if node.due_date is not None:
        d["dueDate"] = _iso(node.due_date)

    if node.task is None:
        d["taskCount"] = task_counts[node.id]
        d["subMilestones"] = []
        d["tasks"] = []
        return d

    t = node.task
    d["priority"] = t.priority.value
    if t.notes:
        d["notes"] = t.notes
    d["assignedTo"] = []
    for a in t.assignees:
        ad: dict[str, Any] = {"user": a.user_id, "completionStatus": a.completion_status.value}
        if a.completion_grade is not None:
            ad["completionGrade"] = {"score": _num(a.completion_grade)}
        if a.completion_notes:
            ad["completionNotes"] = a.completion_notes
        if a.completion_documents:
            ad["completionDocuments"] = list(a.completion_documents)
        d["assignedTo"].append(ad)
    d["linkedKPIs"] = []
    for k in t.linked_kpis:
        kd: dict[str, Any] = {
            "kpiDocId": k.kpi_doc_id,
            "kpiIndex": k.kpi_index,
            "contributionWeight": _num(k.contribution_weight),
        }
        if k.user_id is not None:
            kd["userId"] = k.user_id
        d["linkedKPIs"].append(kd)
    return d


def _task_counts(tree: HierarchyTree, root_id: str) -> dict[str, int]:
    counts: dict[str, int] = {}
    for node in reversed(list(tree.walk(root_id))):
        if node.is_task:
            counts[node.id] = 1
        else:
            counts[node.id] = sum(counts[cid] for cid in node.child_ids)
    return counts


def _num(v: float) -> float | int:
    return int(v) if float(v).is_integer() else v


def _iso(d: date) -> str:
    return d.isoformat()
