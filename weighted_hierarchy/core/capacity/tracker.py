from __future__ import annotations

import math
from enum import Enum

from weighted_hierarchy.core.errors import (
    CapacityExceeded,
    CapacityViolation,
    InvalidParent,
    InvalidWeight,
)
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree
from weighted_hierarchy.core.weights.validator import remaining_capacity, validate_insertion


class AllocationState(str, Enum):
    EMPTY = "empty"
    PARTIALLY_ALLOCATED = "partially_allocated"
    FULLY_ALLOCATED = "fully_allocated"
    # Only reachable for trees that were loaded, never through insert_child.
    OVER_ALLOCATED = "over_allocated"


class CapacityTracker:
    """Read-only view answering "how much weight is left under this parent".

    State follows the tree: insert_child moves a parent from EMPTY towards
    FULLY_ALLOCATED and remove_child moves it back. Nothing is stored here.
    """

    def __init__(self, tree: HierarchyTree) -> None:
        self.tree = tree

    def allocated_for(self, parent_id: str) -> float:
        return math.fsum(self.tree.child_weights(parent_id))

    def remaining_for(self, parent_id: str) -> float:
        remaining, _ = remaining_capacity(
            self.tree.child_weights(parent_id), node_id=parent_id, tolerance=self.tree.tolerance
        )
        return remaining

    def state_for(self, parent_id: str) -> AllocationState:
        weights = self.tree.child_weights(parent_id)
        if not weights:
            return AllocationState.EMPTY
        remaining, violation = remaining_capacity(
            weights, node_id=parent_id, tolerance=self.tree.tolerance
        )
        if violation is not None:
            return AllocationState.OVER_ALLOCATED
        if remaining == 0:
            return AllocationState.FULLY_ALLOCATED
        return AllocationState.PARTIALLY_ALLOCATED

    def can_accept(self, parent_id: str, weight: float) -> bool:
        try:
            self.check(parent_id, weight)
        except (CapacityExceeded, InvalidParent, InvalidWeight):
            return False
        return True

    def check(self, parent_id: str, weight: float) -> float:
        """Raise exactly what insert_child would, without touching the tree."""
        node = self.tree.get(parent_id)
        if node.is_task:
            raise InvalidParent(message=f"task {parent_id} cannot own children", node_id=parent_id)
        return validate_insertion(
            self.tree.child_weights(parent_id),
            weight,
            node_id=parent_id,
            tolerance=self.tree.tolerance,
        )

    def diagnostics(self) -> list[CapacityViolation]:
        out: list[CapacityViolation] = []
        for node in self.tree.walk():
            if node.is_task or not node.child_ids:
                continue
            _, violation = remaining_capacity(
                self.tree.child_weights(node.id), node_id=node.id, tolerance=self.tree.tolerance
            )
            if violation is not None:
                out.append(violation)
        return out
