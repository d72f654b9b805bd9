from __future__ import annotations

from collections.abc import Iterator
from typing import Optional

from weighted_hierarchy.core.config.engine_config import DEFAULT
from weighted_hierarchy.core.errors import DuplicateId, InvalidParent, InvalidWeight, NotFound
from weighted_hierarchy.core.model import ROOT_WEIGHT, Node, Status
from weighted_hierarchy.core.weights.validator import check_weight, validate_insertion


class HierarchyTree:
    """Milestone -> sub-milestone* -> task* hierarchy stored as an arena.

    Nodes live in ``nodes_by_id``; structure is carried by ``parent_id`` and
    ``child_ids``. Traversals are iterative so arbitrarily deep sub-milestone
    nesting does not hit the recursion limit.

    The tree is not thread-safe. Callers sharing one instance across requests
    must lock around mutations.
    """

    def __init__(self, root: Node, *, tolerance: float = DEFAULT.weight_tolerance) -> None:
        if root.kind != "milestone":
            raise InvalidParent(message="root must be a milestone", node_id=root.id)
        root.parent_id = None
        root.child_ids = []
        self.root_id = root.id
        self.tolerance = tolerance
        self.nodes_by_id: dict[str, Node] = {root.id: root}

    @classmethod
    def create(cls, milestone_id: str, title: str, **fields) -> "HierarchyTree":
        """New tree rooted at a milestone worth 100% of itself."""
        fields.setdefault("weight", ROOT_WEIGHT)
        return cls(Node(id=milestone_id, kind="milestone", title=title, **fields))

    @property
    def root(self) -> Node:
        return self.nodes_by_id[self.root_id]

    def __len__(self) -> int:
        return len(self.nodes_by_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes_by_id

    # -- lookup ---------------------------------------------------------

    def get(self, node_id: str) -> Node:
        node = self.nodes_by_id.get(node_id)
        if node is None:
            raise NotFound(message=f"unknown node id: {node_id}", node_id=node_id)
        return node

    def find_node(self, node_id: str, root_id: Optional[str] = None) -> Node:
        """Depth-first search for node_id within the subtree at root_id."""
        for node in self.walk(root_id):
            if node.id == node_id:
                return node
        raise NotFound(message=f"node {node_id} not found under {root_id or self.root_id}", node_id=node_id)

    def children(self, node_id: str) -> list[Node]:
        return [self.nodes_by_id[cid] for cid in self.get(node_id).child_ids]

    def child_weights(self, node_id: str) -> list[float]:
        return [c.weight for c in self.children(node_id)]

    def walk(self, root_id: Optional[str] = None) -> Iterator[Node]:
        """Pre-order depth-first traversal, children in insertion order."""
        stack = [self.get(root_id or self.root_id)]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(self.nodes_by_id[cid] for cid in reversed(node.child_ids))

    def descendant_ids(self, node_id: str) -> list[str]:
        return [n.id for n in self.walk(node_id)][1:]

    def path_to(self, node_id: str) -> list[str]:
        """Ids from the root down to node_id (inclusive)."""
        out: list[str] = []
        cur: Optional[Node] = self.get(node_id)
        while cur is not None:
            out.append(cur.id)
            cur = self.nodes_by_id.get(cur.parent_id) if cur.parent_id else None
        return list(reversed(out))

    def depth(self, node_id: str) -> int:
        return len(self.path_to(node_id)) - 1

    def flatten_tasks(self, root_id: Optional[str] = None) -> "TaskSequence":
        return TaskSequence(self, root_id or self.root_id)

    # -- mutation -------------------------------------------------------

    def insert_child(self, parent_id: str, child: Node) -> Node:
        """Append child under parent_id after the local capacity check.

        Raises NotFound, InvalidParent, DuplicateId, InvalidWeight or
        CapacityExceeded; on any error the tree is unchanged.
        """
        parent = self.get(parent_id)
        if parent.is_task:
            raise InvalidParent(message=f"task {parent_id} cannot own children", node_id=parent_id)
        if child.kind == "milestone":
            raise InvalidParent(message="a milestone can only be the root", node_id=child.id)
        if child.id in self.nodes_by_id:
            raise DuplicateId(message=f"node id already exists: {child.id}", node_id=child.id)
        validate_insertion(
            self.child_weights(parent_id),
            child.weight,
            node_id=parent_id,
            tolerance=self.tolerance,
        )

        child.weight = float(child.weight)
        child.parent_id = parent_id
        child.child_ids = []
        self.nodes_by_id[child.id] = child
        parent.child_ids.append(child.id)
        return child

    def attach(self, parent_id: str, child: Node) -> Node:
        """Attach without the capacity check.

        Used when rebuilding a tree supplied by an external source, which may
        already be over-allocated; lint reports that afterwards.
        """
        parent = self.get(parent_id)
        if parent.is_task:
            raise InvalidParent(message=f"task {parent_id} cannot own children", node_id=parent_id)
        if child.kind == "milestone":
            raise InvalidParent(message="a milestone can only be the root", node_id=child.id)
        if child.id in self.nodes_by_id:
            raise DuplicateId(message=f"node id already exists: {child.id}", node_id=child.id)
        child.parent_id = parent_id
        child.child_ids = []
        self.nodes_by_id[child.id] = child
        parent.child_ids.append(child.id)
        return child

    def remove_child(self, parent_id: str, child_id: str) -> list[str]:
        """Detach child_id from parent_id and delete its whole subtree.

        Returns the removed ids, child first. Removing an id that is not a
        direct child of parent_id raises NotFound.
        """
        parent = self.get(parent_id)
        if child_id not in parent.child_ids:
            raise NotFound(message=f"{child_id} is not a child of {parent_id}", node_id=child_id)

        removed = [n.id for n in self.walk(child_id)]
        parent.child_ids.remove(child_id)
        for nid in removed:
            del self.nodes_by_id[nid]
        return removed

    def reweight(self, node_id: str, weight: float) -> Node:
        """Change a child's weight, checked against its siblings' remaining capacity."""
        node = self.get(node_id)
        if node.parent_id is None:
            raise InvalidWeight(message="root weight is fixed at 100", node_id=node_id)
        siblings = [c.weight for c in self.children(node.parent_id) if c.id != node_id]
        validate_insertion(siblings, weight, node_id=node.parent_id, tolerance=self.tolerance)
        node.weight = check_weight(weight, node_id=node_id)
        return node

    def set_task_status(self, task_id: str, status: Status, progress: Optional[float] = None) -> Node:
        """Set a leaf's status; Completed pins progress to 100 and NotStarted to 0."""
        node = self.get(task_id)
        if not node.is_task:
            raise InvalidParent(message=f"{task_id} is not a task", node_id=task_id)
        node.status = status
        if status == Status.COMPLETED:
            node.progress = 100.0
        elif status == Status.NOT_STARTED:
            node.progress = 0.0
        elif progress is not None:
            node.progress = min(100.0, max(0.0, float(progress)))
        return node


class TaskSequence:
    """Lazy, restartable view over every task under a root (depth-first)."""

    def __init__(self, tree: HierarchyTree, root_id: str) -> None:
        tree.get(root_id)
        self._tree = tree
        self._root_id = root_id

    def __iter__(self) -> Iterator[Node]:
        return (n for n in self._tree.walk(self._root_id) if n.is_task)
