from datetime import date

import pytest

from weighted_hierarchy.core.errors import InvalidGrade
from weighted_hierarchy.core.kpi.contribution import (
    apply_contributions,
    compute_contribution,
    contributions_for_task,
    current_quarter,
    grade_description,
    kpi_achievement_status,
    overall_kpi_achievement,
    quarter_date_range,
    validate_kpi_weights,
    validate_task_links,
)
from weighted_hierarchy.core.model import Assignee, CompletionStatus, KPIRef, LinkedKPI, new_task


def test_contribution_arithmetic():
    assert compute_contribution(50, 4, 50) == pytest.approx(20)
    assert compute_contribution(100, 5, 100) == pytest.approx(100)
    assert compute_contribution(40, 0, 100) == 0
    assert compute_contribution(30, 2.5, 100) == pytest.approx(15)


@pytest.mark.parametrize("grade", [-0.5, 5.5, 3.3, "4", None])
def test_invalid_grade(grade):
    with pytest.raises(InvalidGrade):
        compute_contribution(50, grade, 100)


def test_split_is_not_renormalized():
    # links summing to 80 only hand out 80% of the task's weight
    total = compute_contribution(50, 5, 50) + compute_contribution(50, 5, 30)
    assert total == pytest.approx(40)


def test_contributions_for_task_per_assignee_links():
    task = new_task(
        "T-1",
        "Shared task",
        50,
        assignees=[
            Assignee("u1", CompletionStatus.APPROVED, completion_grade=4),
            Assignee("u2", CompletionStatus.APPROVED, completion_grade=5),
            Assignee("u3", CompletionStatus.SUBMITTED),
        ],
        linked_kpis=[
            LinkedKPI("kpi-u1", 0, 50, user_id="u1"),
            LinkedKPI("kpi-u1", 1, 50, user_id="u1"),
            LinkedKPI("kpi-u2", 0, 100, user_id="u2"),
            LinkedKPI("kpi-u3", 0, 100, user_id="u3"),
        ],
    )
    got = contributions_for_task(task)
    assert got == {
        ("kpi-u1", 0): pytest.approx(20),
        ("kpi-u1", 1): pytest.approx(20),
        ("kpi-u2", 0): pytest.approx(50),
    }


def test_validate_task_links():
    ok = new_task(
        "T-1",
        "ok",
        10,
        assignees=[Assignee("u1")],
        linked_kpis=[LinkedKPI("k", 0, 60, "u1"), LinkedKPI("k", 1, 40, "u1")],
    )
    assert validate_task_links(ok) == []

    missing = new_task("T-2", "missing", 10, assignees=[Assignee("u1"), Assignee("u2")],
                       linked_kpis=[LinkedKPI("k", 0, 100, "u1")])
    [e] = validate_task_links(missing)
    assert e.code == "L_TASK_MISSING_KPI"
    assert "u2" in e.message

    short = new_task("T-3", "short", 10, assignees=[Assignee("u1")],
                     linked_kpis=[LinkedKPI("k", 0, 70, "u1")])
    assert [e.code for e in validate_task_links(short)] == ["L_KPI_SPLIT"]

    assert validate_task_links(new_task("T-4", "unassigned", 10)) == []


def test_kpi_set_helpers():
    kpis = [
        KPIRef("doc", 0, "Throughput", 60, achievement=50),
        KPIRef("doc", 1, "Quality", 40, achievement=100),
    ]
    assert validate_kpi_weights(kpis).is_valid
    assert overall_kpi_achievement(kpis) == pytest.approx(70)
    assert overall_kpi_achievement([]) == 0

    updated = apply_contributions(kpis, {("doc", 0): 20, ("doc", 1): 15})
    assert [k.achievement for k in updated] == [70, 100]


@pytest.mark.parametrize(
    "achievement,label",
    [(100, "Achieved"), (80, "On Track"), (55, "Needs Attention"), (10, "At Risk")],
)
def test_kpi_achievement_status(achievement, label):
    assert kpi_achievement_status(achievement) == label


def test_grade_description():
    assert grade_description(5).startswith("Excellent")
    assert grade_description(4.5) == "Not graded"
    assert grade_description(None) == "Not graded"


def test_quarters():
    assert current_quarter(date(2026, 10, 19)) == "Q4-2026"
    assert current_quarter(date(2025, 3, 31)) == "Q1-2025"
    assert quarter_date_range("Q1-2024") == (date(2024, 1, 1), date(2024, 3, 31))
    assert quarter_date_range("Q4-2026") == (date(2026, 10, 1), date(2026, 12, 31))
    with pytest.raises(ValueError):
        quarter_date_range("2026-Q1")
