import pytest

from weighted_hierarchy.core.capacity.tracker import AllocationState, CapacityTracker
from weighted_hierarchy.core.errors import CapacityExceeded, InvalidParent
from weighted_hierarchy.core.model import new_sub_milestone, new_task
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree


def test_weight_conservation():
    tree = HierarchyTree.create("MS-1", "Milestone")
    tracker = CapacityTracker(tree)
    for i, w in enumerate([25, 25, 50]):
        tree.insert_child("MS-1", new_task(f"T-{i}", f"t{i}", w))
    assert tracker.remaining_for("MS-1") == 0
    with pytest.raises(CapacityExceeded):
        tree.insert_child("MS-1", new_task("T-x", "one more", 0.5))


def test_state_transitions_follow_insert_and_remove():
    tree = HierarchyTree.create("MS-1", "Milestone")
    tracker = CapacityTracker(tree)
    assert tracker.state_for("MS-1") == AllocationState.EMPTY

    tree.insert_child("MS-1", new_sub_milestone("SM-1", "a", 60))
    assert tracker.state_for("MS-1") == AllocationState.PARTIALLY_ALLOCATED
    assert tracker.remaining_for("MS-1") == 40

    tree.insert_child("MS-1", new_sub_milestone("SM-2", "b", 40))
    assert tracker.state_for("MS-1") == AllocationState.FULLY_ALLOCATED

    tree.remove_child("MS-1", "SM-2")
    assert tracker.state_for("MS-1") == AllocationState.PARTIALLY_ALLOCATED
    tree.remove_child("MS-1", "SM-1")
    assert tracker.state_for("MS-1") == AllocationState.EMPTY


def test_boundary_drives_remaining_to_zero():
    tree = HierarchyTree.create("MS-1", "Milestone")
    tree.insert_child("MS-1", new_task("T-1", "a", 60))
    tracker = CapacityTracker(tree)
    assert not tracker.can_accept("MS-1", 40.01)
    assert tracker.can_accept("MS-1", 40)
    tree.insert_child("MS-1", new_task("T-2", "b", 40))
    assert tracker.remaining_for("MS-1") == 0


def test_check_fails_fast_without_mutation():
    tree = HierarchyTree.create("MS-1", "Milestone")
    tree.insert_child("MS-1", new_task("T-1", "a", 90))
    tracker = CapacityTracker(tree)
    with pytest.raises(CapacityExceeded) as exc:
        tracker.check("MS-1", 20)
    assert exc.value.remaining == 10
    assert tree.root.child_ids == ["T-1"]
    with pytest.raises(InvalidParent):
        tracker.check("T-1", 5)
    assert not tracker.can_accept("T-1", 5)
    assert not tracker.can_accept("MS-1", -3)


def test_over_allocated_tree_is_reported_not_raised():
    tree = HierarchyTree.create("MS-1", "Loaded")
    tree.attach("MS-1", new_sub_milestone("SM-1", "a", 70))
    tree.attach("MS-1", new_sub_milestone("SM-2", "b", 50))
    tracker = CapacityTracker(tree)
    assert tracker.remaining_for("MS-1") == 0
    assert tracker.allocated_for("MS-1") == 120
    assert tracker.state_for("MS-1") == AllocationState.OVER_ALLOCATED
    [violation] = tracker.diagnostics()
    assert violation.node_id == "MS-1"
    assert violation.code == "E_CAPACITY_VIOLATION"
