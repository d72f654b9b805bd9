from datetime import date
from pathlib import Path

import pytest
import yaml

from weighted_hierarchy.core.config.engine_config import merged_config
from weighted_hierarchy.core.io.dump_hierarchy import dump_hierarchy_yaml, tree_to_dict
from weighted_hierarchy.core.io.load_hierarchy import load_hierarchy
from weighted_hierarchy.core.kpi.contribution import contributions_for_task
from weighted_hierarchy.core.model import CompletionStatus, Priority, Status
from weighted_hierarchy.core.progress.aggregate import compute_progress
from weighted_hierarchy.core.validate.validate_hierarchy import summarize_hierarchy, validate_hierarchy

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def _validate(name: str):
    return validate_hierarchy(load_hierarchy(str(EXAMPLES / name)))


def test_validate_happy_path():
    tree, errors = _validate("milestone.yaml")
    assert errors == []
    assert tree is not None
    assert len(tree) == 7
    assert tree.get("SM-1").child_ids == ["T-1", "T-2"]
    assert compute_progress(tree) == 70

    t1 = tree.get("T-1")
    assert t1.task.priority == Priority.HIGH
    assert t1.due_date == date(2026, 10, 1)
    assert t1.task.assignees[0].completion_grade == 4
    assert tree.get("T-3").progress == 100


def test_validate_api_envelope_shape():
    tree, errors = _validate("envelope.json")
    assert errors == []
    t = tree.get("T-70")
    assert t.task.priority == Priority.LOW
    assert t.task.assignees[0].user_id == "u9"
    assert t.task.assignees[0].completion_status == CompletionStatus.SUBMITTED
    assert t.due_date == date(2026, 11, 30)
    assert t.status == Status.IN_PROGRESS


def test_validate_missing_title():
    tree, errors = _validate("invalid-missing-title.yaml")
    assert tree is None
    assert [e.code for e in errors] == ["E_REQUIRED_FIELD"]
    assert errors[0].path.endswith("hierarchy.tasks[0].title")


def test_validate_bad_weight():
    tree, errors = _validate("invalid-bad-weight.yaml")
    assert tree is None
    assert any(e.code == "E_INVALID_WEIGHT" for e in errors)


def test_validate_tolerates_over_allocation():
    tree, errors = _validate("over-allocated.yaml")
    assert errors == []
    assert tree is not None


def test_validate_duplicate_ids_and_enums():
    doc = {
        "hierarchy": {
            "id": "MS-1",
            "title": "m",
            "status": "Done",
            "tasks": [
                {"id": "T-1", "title": "a", "taskWeight": 10},
                {"id": "T-1", "title": "b", "taskWeight": 10},
            ],
        }
    }
    tree, errors = validate_hierarchy(doc)
    assert tree is None
    assert [e.code for e in errors] == ["E_INVALID_ENUM"]

    doc["hierarchy"]["status"] = "In Progress"
    tree, errors = validate_hierarchy(doc)
    assert tree is None
    assert [e.code for e in errors] == ["E_DUPLICATE_ID"]


def test_validate_task_field_shapes():
    doc = {
        "hierarchy": {
            "id": "MS-1",
            "title": "m",
            "tasks": [
                {
                    "id": "T-1",
                    "title": "a",
                    "taskWeight": 10,
                    "priority": "URGENT",
                },
                {
                    "id": "T-2",
                    "title": "b",
                    "taskWeight": 10,
                    "assignedTo": [{"user": "u1", "completionGrade": {"score": 9}}],
                },
                {
                    "id": "T-3",
                    "title": "c",
                    "taskWeight": 10,
                    "linkedKPIs": [{"kpiDocId": "k", "kpiIndex": "0", "contributionWeight": 100}],
                },
            ],
        }
    }
    tree, errors = validate_hierarchy(doc)
    assert tree is None
    assert sorted(e.code for e in errors) == ["E_INVALID_ENUM", "E_INVALID_GRADE", "E_INVALID_TYPE"]


def test_summary_text():
    tree, _ = _validate("milestone.yaml")
    text = summarize_hierarchy(tree)
    assert text.startswith("OK: 7 nodes (milestone=1, sub_milestone=3, task=3)")
    assert "progress=70%" in text


def test_dump_reloads_to_same_tree(tmp_path: Path):
    tree, _ = _validate("milestone.yaml")
    out = tmp_path / "out.yaml"
    dump_hierarchy_yaml(tree, str(out))

    data = yaml.safe_load(out.read_text(encoding="utf-8"))
    assert data["progress"] == 70
    assert data["taskCount"] == 3
    assert data["subMilestones"][0]["tasks"][0]["assignedTo"][0]["completionGrade"] == {"score": 4}

    again, errors = validate_hierarchy(load_hierarchy(str(out)))
    assert errors == []
    assert tree_to_dict(again) == tree_to_dict(tree)


def _graded_doc(score):
    return {
        "hierarchy": {
            "id": "MS-1",
            "title": "m",
            "tasks": [
                {
                    "id": "T-1",
                    "title": "a",
                    "taskWeight": 40,
                    "assignedTo": [
                        {"user": "u1", "completionStatus": "approved", "completionGrade": {"score": score}}
                    ],
                    "linkedKPIs": [{"kpiDocId": "k", "kpiIndex": 0, "contributionWeight": 100}],
                }
            ],
        }
    }


def test_validate_rejects_off_step_grade():
    tree, errors = validate_hierarchy(_graded_doc(4.3))
    assert tree is None
    assert [e.code for e in errors] == ["E_INVALID_GRADE"]
    assert errors[0].path.endswith("hierarchy.tasks[0].assignedTo[0].completionGrade")
    assert "multiple of 0.5" in errors[0].message

    tree, errors = validate_hierarchy(_graded_doc(4.5))
    assert errors == []
    assert contributions_for_task(tree.get("T-1")) == {("k", 0): pytest.approx(36)}


def test_validate_grades_follow_config():
    wide = merged_config({"max_grade": 10, "grade_step": 1})
    tree, errors = validate_hierarchy(_graded_doc(9), config=wide)
    assert errors == []
    assert tree.get("T-1").task.assignees[0].completion_grade == 9

    tree, errors = validate_hierarchy(_graded_doc(4.5), config=wide)
    assert tree is None
    assert [e.code for e in errors] == ["E_INVALID_GRADE"]
