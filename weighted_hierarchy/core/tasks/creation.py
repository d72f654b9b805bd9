from __future__ import annotations

from weighted_hierarchy.core.errors import InvalidParent
from weighted_hierarchy.core.kpi.contribution import validate_task_links
from weighted_hierarchy.core.model import Node
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree


def create_sub_milestone(tree: HierarchyTree, parent_id: str, node: Node) -> Node:
    if node.kind != "sub_milestone":
        raise InvalidParent(message=f"expected a sub_milestone, got {node.kind}", node_id=node.id)
    return tree.insert_child(parent_id, node)


def create_task(tree: HierarchyTree, parent_id: str, node: Node) -> Node:
    """Insert a task after checking its KPI links.

    A task with assignees must link at least one KPI per assignee, with each
    assignee's contribution weights totalling 100.
    """
    if not node.is_task or node.task is None:
        raise InvalidParent(message=f"expected a task, got {node.kind}", node_id=node.id)
    errors = validate_task_links(node, tolerance=tree.tolerance)
    if errors:
        raise errors[0]
    return tree.insert_child(parent_id, node)
