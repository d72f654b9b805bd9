from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional, cast

from weighted_hierarchy.core.config.engine_config import DEFAULT, EngineConfig
from weighted_hierarchy.core.errors import HierarchyValidationError, InvalidGrade, InvalidWeight
from weighted_hierarchy.core.kpi.contribution import check_grade
from weighted_hierarchy.core.model import (
    ROOT_WEIGHT,
    Assignee,
    CompletionStatus,
    LinkedKPI,
    Node,
    NodeKind,
    Priority,
    Status,
    TaskDetails,
)
from weighted_hierarchy.core.progress.aggregate import compute_progress
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree
from weighted_hierarchy.core.weights.validator import check_weight


ALLOWED_STATUSES: set[str] = {s.value for s in Status}
ALLOWED_PRIORITIES: set[str] = {p.value for p in Priority}
ALLOWED_COMPLETION: set[str] = {c.value for c in CompletionStatus}

_Err = Callable[[str, str, str], None]


def validate_hierarchy(
    doc: dict[str, Any],
    *,
    tolerance: Optional[float] = None,
    config: EngineConfig = DEFAULT,
) -> tuple[Optional[HierarchyTree], list[HierarchyValidationError]]:
    """Validate a loaded hierarchy document and build the tree.

    Returns (tree, errors). Tree is None when errors exist. Capacity problems
    (siblings over 100) are not errors here; lint reports them.
    tolerance defaults to config.weight_tolerance; grades are checked against
    config.max_grade and config.grade_step.
    """

    file = cast(Optional[str], doc.get("__file__"))
    errors: list[HierarchyValidationError] = []

    def err(code: str, message: str, path: str) -> None:
        errors.append(
            HierarchyValidationError(
                code=code,
                message=message,
                path=f"{file}:{path}" if file else path,
            )
        )

    raw_root = doc.get("hierarchy")
    if not isinstance(raw_root, dict):
        err("E_REQUIRED_FIELD", "hierarchy must be an object", "hierarchy")
        return None, _sorted(errors)

    root = _parse_node(raw_root, "milestone", "hierarchy", err, config)
    if root is None:
        return None, _sorted(errors)
    tree = HierarchyTree(root, tolerance=config.weight_tolerance if tolerance is None else tolerance)

    # (raw children owner, parent id, path); explicit stack so deep nesting is fine.
    stack: list[tuple[dict[str, Any], str, str]] = [(raw_root, root.id, "hierarchy")]
    while stack:
        raw, parent_id, path = stack.pop()
        groups: list[tuple[str, NodeKind]] = [("subMilestones", "sub_milestone"), ("tasks", "task")]
        for key, kind in groups:
            items = raw.get(key)
            if items is None:
                continue
            if not isinstance(items, list):
                err("E_INVALID_TYPE", f"{key} must be an array", f"{path}.{key}")
                continue
            pending: list[tuple[dict[str, Any], str, str]] = []
            for i, child_raw in enumerate(items):
                child_path = f"{path}.{key}[{i}]"
                if not isinstance(child_raw, dict):
                    err("E_INVALID_TYPE", "node must be an object", child_path)
                    continue
                child = _parse_node(child_raw, kind, child_path, err, config)
                if child is None:
                    continue
                if child.id in tree:
                    err("E_DUPLICATE_ID", f"duplicate node id: {child.id}", f"{child_path}.id")
                    continue
                tree.attach(parent_id, child)
                if kind == "sub_milestone":
                    pending.append((child_raw, child.id, child_path))
            stack.extend(reversed(pending))

    if errors:
        return None, _sorted(errors)
    return tree, []


def summarize_hierarchy(tree: HierarchyTree) -> str:
    counts = Counter([n.kind for n in tree.nodes_by_id.values()])
    ordered: list[str] = ["milestone", "sub_milestone", "task"]
    parts = [f"{k}={counts.get(k, 0)}" for k in ordered]
    return (
        f"OK: {len(tree)} nodes ("
        + ", ".join(parts)
        + f")\nRoot: {tree.root_id} progress={compute_progress(tree):g}%"
    )


def _parse_node(
    raw: dict[str, Any], kind: NodeKind, path: str, err: _Err, config: EngineConfig
) -> Optional[Node]:
    nid = raw.get("id", raw.get("_id"))
    if not isinstance(nid, str) or not nid.strip():
        err("E_REQUIRED_FIELD", "id is required and must be a non-empty string", f"{path}.id")
        return None

    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        err("E_REQUIRED_FIELD", "title is required and must be a non-empty string", f"{path}.title")
        return None

    description = raw.get("description") or ""
    if not isinstance(description, str):
        err("E_INVALID_TYPE", "description must be a string", f"{path}.description")
        return None

    weight_key = "taskWeight" if kind == "task" and "taskWeight" in raw else "weight"
    weight_raw = raw.get(weight_key)
    if weight_raw is None and kind == "milestone":
        weight_raw = ROOT_WEIGHT
    try:
        weight = check_weight(weight_raw, node_id=nid)
    except InvalidWeight as e:
        err("E_INVALID_WEIGHT", e.message, f"{path}.{weight_key}")
        return None

    status_raw = raw.get("status", Status.NOT_STARTED.value)
    if not isinstance(status_raw, str) or status_raw not in ALLOWED_STATUSES:
        err("E_INVALID_ENUM", f"status must be one of {sorted(ALLOWED_STATUSES)}", f"{path}.status")
        return None
    status = Status(status_raw)

    progress_raw = raw.get("progress")
    if progress_raw is None:
        progress = 100.0 if status == Status.COMPLETED and kind == "task" else 0.0
    elif not _is_number(progress_raw) or not 0 <= progress_raw <= 100:
        err("E_INVALID_TYPE", "progress must be a number within [0, 100]", f"{path}.progress")
        return None
    else:
        progress = float(progress_raw)

    ok, due = _parse_date(raw.get("dueDate"))
    if not ok:
        err("E_INVALID_TYPE", "dueDate must be an ISO date", f"{path}.dueDate")
        return None

    node = Node(
        id=nid,
        kind=kind,
        title=title,
        weight=weight,
        description=description,
        progress=progress,
        status=status,
        due_date=due,
    )
    if kind == "task":
        details = _parse_task_details(raw, path, err, config)
        if details is None:
            return None
        details.due_date = due
        node.task = details
    return node


def _parse_task_details(
    raw: dict[str, Any], path: str, err: _Err, config: EngineConfig
) -> Optional[TaskDetails]:
    priority_raw = raw.get("priority", Priority.MEDIUM.value)
    if isinstance(priority_raw, str):
        priority_raw = priority_raw.upper()
    if not isinstance(priority_raw, str) or priority_raw not in ALLOWED_PRIORITIES:
        err("E_INVALID_ENUM", f"priority must be one of {sorted(ALLOWED_PRIORITIES)}", f"{path}.priority")
        return None

    notes = raw.get("notes") or ""
    if not isinstance(notes, str):
        err("E_INVALID_TYPE", "notes must be a string", f"{path}.notes")
        return None

    assignees: list[Assignee] = []
    for i, a in enumerate(_list(raw.get("assignedTo"), f"{path}.assignedTo", err) or []):
        a_path = f"{path}.assignedTo[{i}]"
        assignee = _parse_assignee(a, a_path, err, config)
        if assignee is None:
            return None
        assignees.append(assignee)

    links: list[LinkedKPI] = []
    for i, k in enumerate(_list(raw.get("linkedKPIs"), f"{path}.linkedKPIs", err) or []):
        link = _parse_link(k, f"{path}.linkedKPIs[{i}]", err)
        if link is None:
            return None
        links.append(link)

    return TaskDetails(
        priority=Priority(priority_raw),
        assignees=assignees,
        linked_kpis=links,
        notes=notes,
    )


def _parse_assignee(a: Any, path: str, err: _Err, config: EngineConfig) -> Optional[Assignee]:
    if not isinstance(a, dict):
        err("E_INVALID_TYPE", "assignee must be an object", path)
        return None

    user = a.get("user", a.get("userId"))
    if isinstance(user, dict):
        user = user.get("_id", user.get("id"))
    if not isinstance(user, str) or not user.strip():
        err("E_REQUIRED_FIELD", "assignee user is required and must be a non-empty string", f"{path}.user")
        return None

    status_raw = a.get("completionStatus", CompletionStatus.PENDING.value)
    if not isinstance(status_raw, str) or status_raw not in ALLOWED_COMPLETION:
        err(
            "E_INVALID_ENUM",
            f"completionStatus must be one of {sorted(ALLOWED_COMPLETION)}",
            f"{path}.completionStatus",
        )
        return None

    grade = a.get("completionGrade")
    if isinstance(grade, dict):
        grade = grade.get("score")
    if grade is not None:
        try:
            grade = check_grade(grade, config=config)
        except InvalidGrade as e:
            err("E_INVALID_GRADE", e.message, f"{path}.completionGrade")
            return None

    docs = a.get("completionDocuments") or []
    if not isinstance(docs, list) or not all(isinstance(d, str) for d in docs):
        err("E_INVALID_TYPE", "completionDocuments must be an array of strings", f"{path}.completionDocuments")
        return None

    notes = a.get("completionNotes")
    if notes is not None and not isinstance(notes, str):
        err("E_INVALID_TYPE", "completionNotes must be a string", f"{path}.completionNotes")
        return None

    return Assignee(
        user_id=user,
        completion_status=CompletionStatus(status_raw),
        completion_grade=float(grade) if grade is not None else None,
        completion_notes=notes,
        completion_documents=list(docs),
    )


def _parse_link(k: Any, path: str, err: _Err) -> Optional[LinkedKPI]:
    if not isinstance(k, dict):
        err("E_INVALID_TYPE", "linked KPI must be an object", path)
        return None
    doc_id = k.get("kpiDocId")
    if not isinstance(doc_id, str) or not doc_id.strip():
        err("E_REQUIRED_FIELD", "kpiDocId is required and must be a non-empty string", f"{path}.kpiDocId")
        return None
    index = k.get("kpiIndex")
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        err("E_INVALID_TYPE", "kpiIndex must be a non-negative integer", f"{path}.kpiIndex")
        return None
    weight = k.get("contributionWeight")
    if not _is_number(weight) or not 0 <= weight <= 100:
        err("E_INVALID_TYPE", "contributionWeight must be a number within [0, 100]", f"{path}.contributionWeight")
        return None
    user = k.get("userId")
    if user is not None and not isinstance(user, str):
        err("E_INVALID_TYPE", "userId must be a string", f"{path}.userId")
        return None
    return LinkedKPI(kpi_doc_id=doc_id, kpi_index=index, contribution_weight=float(weight), user_id=user)


def _list(v: Any, path: str, err: _Err) -> Optional[list[Any]]:
    if v is None:
        return []
    if not isinstance(v, list):
        err("E_INVALID_TYPE", "must be an array", path)
        return None
    return v


def _parse_date(v: Any) -> tuple[bool, Optional[date]]:
    if v is None:
        return True, None
    if isinstance(v, datetime):
        return True, v.date()
    if isinstance(v, date):
        return True, v
    if isinstance(v, str):
        try:
            return True, date.fromisoformat(v[:10])
        except ValueError:
            return False, None
    return False, None


def _is_number(v: Any) -> bool:
    return not isinstance(v, bool) and isinstance(v, (int, float))


def _sorted(errors: Iterable[HierarchyValidationError]) -> list[HierarchyValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.path or "",
            e.code,
        ),
    )
