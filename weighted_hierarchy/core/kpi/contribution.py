from __future__ import annotations

import calendar
import math
import re
from collections import defaultdict
from datetime import date
from typing import Any, Iterable, Optional

from weighted_hierarchy.core.config.engine_config import DEFAULT, EngineConfig
from weighted_hierarchy.core.errors import HierarchyValidationError, InvalidGrade
from weighted_hierarchy.core.model import (
    ROOT_WEIGHT,
    Assignee,
    CompletionStatus,
    KPIRef,
    Node,
)
from weighted_hierarchy.core.weights.validator import WeightTotalCheck, validate_weights_total


KPIKey = tuple[str, int]

GRADE_DESCRIPTIONS: dict[int, str] = {
    5: "Excellent - Exceptional work, exceeded expectations",
    4: "Good - Met expectations with good quality",
    3: "Average - Met basic requirements",
    2: "Below Average - Needs improvement",
    1: "Poor - Significantly below expectations",
}

_QUARTER_RE = re.compile(r"^Q([1-4])-(\d{4})$")


def check_grade(grade: Any, *, config: EngineConfig = DEFAULT) -> float:
    if isinstance(grade, bool) or not isinstance(grade, (int, float)) or math.isnan(grade):
        raise InvalidGrade(message=f"grade must be a number, got {grade!r}")
    if grade < 0 or grade > config.max_grade:
        raise InvalidGrade(message=f"grade must be within [0, {config.max_grade:g}], got {grade}")
    steps = grade / config.grade_step
    if abs(steps - round(steps)) > 1e-9:
        raise InvalidGrade(message=f"grade must be a multiple of {config.grade_step:g}, got {grade}")
    return float(grade)


def compute_contribution(
    task_weight: float,
    grade: float,
    kpi_contribution_weight: float,
    *,
    config: EngineConfig = DEFAULT,
) -> float:
    """Percentage points a graded task adds to one linked KPI.

    (grade / 5) * task_weight * (kpi_contribution_weight / 100). Contribution
    weights are not renormalized; a task whose links do not sum to 100 gets a
    total that differs from its weight.
    """
    g = check_grade(grade, config=config)
    return (g / config.max_grade) * task_weight * (kpi_contribution_weight / ROOT_WEIGHT)


def contributions_for_assignee(
    node: Node, assignee: Assignee, *, config: EngineConfig = DEFAULT
) -> dict[KPIKey, float]:
    """KPI deltas earned by one approved, graded assignee of a task."""
    if node.task is None:
        return {}
    if assignee.completion_status != CompletionStatus.APPROVED or assignee.completion_grade is None:
        return {}

    out: dict[KPIKey, float] = defaultdict(float)
    for link in node.task.links_for(assignee.user_id):
        out[link.key] += compute_contribution(
            node.weight, assignee.completion_grade, link.contribution_weight, config=config
        )
    return dict(out)


def contributions_for_task(node: Node, *, config: EngineConfig = DEFAULT) -> dict[KPIKey, float]:
    out: dict[KPIKey, float] = defaultdict(float)
    if node.task is None:
        return {}
    for a in node.task.assignees:
        for key, delta in contributions_for_assignee(node, a, config=config).items():
            out[key] += delta
    return dict(out)


def validate_task_links(
    node: Node, *, tolerance: float = DEFAULT.weight_tolerance
) -> list[HierarchyValidationError]:
    """Every assignee needs at least one linked KPI, and each assignee's
    contribution weights must total 100."""
    if node.task is None:
        return []

    errors: list[HierarchyValidationError] = []
    for i, a in enumerate(node.task.assignees):
        links = node.task.links_for(a.user_id)
        path = f"assignedTo[{i}]"
        if not links:
            errors.append(
                HierarchyValidationError(
                    code="L_TASK_MISSING_KPI",
                    message=f"assignee {a.user_id} has no linked KPI",
                    node_id=node.id,
                    path=path,
                )
            )
            continue
        check = validate_weights_total([k.contribution_weight for k in links], tolerance=tolerance)
        if not check.is_valid:
            errors.append(
                HierarchyValidationError(
                    code="L_KPI_SPLIT",
                    message=f"contribution weights for {a.user_id}: {check.message}",
                    node_id=node.id,
                    path=path,
                )
            )
    return errors


def validate_kpi_weights(kpis: Iterable[KPIRef]) -> WeightTotalCheck:
    return validate_weights_total(k.weight for k in kpis)


def overall_kpi_achievement(kpis: Iterable[KPIRef]) -> float:
    """Weighted achievement over a user's KPI set; 0 when total weight is 0."""
    items = list(kpis)
    if not items or math.fsum(k.weight for k in items) == 0:
        return 0.0
    return math.fsum(k.achievement * k.weight / ROOT_WEIGHT for k in items)


def apply_contributions(
    kpis: Iterable[KPIRef], deltas: dict[KPIKey, float]
) -> list[KPIRef]:
    """Return KPIs with deltas added to their achievement, capped at 100."""
    out: list[KPIRef] = []
    for k in kpis:
        delta = deltas.get((k.kpi_doc_id, k.kpi_index), 0.0)
        out.append(
            KPIRef(
                kpi_doc_id=k.kpi_doc_id,
                kpi_index=k.kpi_index,
                title=k.title,
                weight=k.weight,
                achievement=min(ROOT_WEIGHT, k.achievement + delta),
            )
        )
    return out


def kpi_achievement_status(achievement: float) -> str:
    if achievement >= 100:
        return "Achieved"
    if achievement >= 75:
        return "On Track"
    if achievement >= 50:
        return "Needs Attention"
    return "At Risk"


def grade_description(grade: Optional[float]) -> str:
    if grade is None or grade != int(grade):
        return "Not graded"
    return GRADE_DESCRIPTIONS.get(int(grade), "Not graded")


def current_quarter(today: date) -> str:
    return f"Q{(today.month - 1) // 3 + 1}-{today.year}"


def quarter_date_range(quarter: str) -> tuple[date, date]:
    """First and last day of a quarter string such as "Q1-2025"."""
    m = _QUARTER_RE.match(quarter)
    if m is None:
        raise ValueError(f"quarter must look like Q1-2025, got {quarter!r}")
    q, year = int(m.group(1)), int(m.group(2))
    start_month = (q - 1) * 3 + 1
    end_month = start_month + 2
    return (
        date(year, start_month, 1),
        date(year, end_month, calendar.monthrange(year, end_month)[1]),
    )
