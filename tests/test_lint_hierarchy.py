from pathlib import Path

from weighted_hierarchy.core.io.load_hierarchy import load_hierarchy
from weighted_hierarchy.core.lint.lint_hierarchy import lint_hierarchy
from weighted_hierarchy.core.model import Assignee, LinkedKPI, new_sub_milestone, new_task
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree
from weighted_hierarchy.core.validate.validate_hierarchy import validate_hierarchy

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def test_lint_clean_hierarchy():
    tree, _ = validate_hierarchy(load_hierarchy(str(EXAMPLES / "milestone.yaml")))
    assert lint_hierarchy(tree) == []


def test_lint_over_allocated():
    tree, _ = validate_hierarchy(load_hierarchy(str(EXAMPLES / "over-allocated.yaml")))
    codes = [(e.node_id, e.code) for e in lint_hierarchy(tree)]
    assert ("MS-9", "L_CAPACITY_VIOLATION") in codes
    assert ("SM-A", "L_EMPTY_DECOMPOSITION") in codes
    assert ("SM-B", "L_EMPTY_DECOMPOSITION") in codes


def test_lint_incomplete_allocation_and_task_rules():
    tree = HierarchyTree.create("MS-1", "m")
    tree.insert_child("MS-1", new_sub_milestone("SM-1", "s", 80))
    tree.insert_child(
        "SM-1",
        new_task(
            "T-1",
            "t",
            100,
            assignees=[Assignee("u1"), Assignee("u2")],
            linked_kpis=[LinkedKPI("k", 0, 50, "u1")],
        ),
    )
    tree.get("T-1").progress = 30

    codes = sorted((e.node_id, e.code) for e in lint_hierarchy(tree))
    assert codes == [
        ("MS-1", "L_INCOMPLETE_ALLOCATION"),
        ("T-1", "L_KPI_SPLIT"),
        ("T-1", "L_STATUS_PROGRESS_MISMATCH"),
        ("T-1", "L_TASK_MISSING_KPI"),
    ]


def test_lint_paths_carry_file():
    tree, _ = validate_hierarchy(load_hierarchy(str(EXAMPLES / "over-allocated.yaml")))
    errors = lint_hierarchy(tree, file="over-allocated.yaml")
    assert all(e.path == "over-allocated.yaml" for e in errors)
